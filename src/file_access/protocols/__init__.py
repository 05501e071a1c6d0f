"""Protocols for remote object stores: S3 (s3://) and the platform (dx://)."""
