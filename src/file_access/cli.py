# cli.py
import click
import logging

from file_access.disambiguator import LocalizationDisambiguator, localize_all
from file_access.exceptions import FileAccessError
from file_access.settings import get_settings
from file_access.sources.base import DirectoryFileSource, ReadableFileSource
from file_access.sources.resolver import create_resolver
from file_access.utils.logging import configure_logging

logger = logging.getLogger(__name__)


@click.group()
@click.option("--log-level", default=None, help="Override the configured log level")
def cli(log_level):
    """Resolve, list and localize files from local disk, HTTP, S3 and the platform"""
    configure_logging(log_level)


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  Log Level: {settings.log_level}")
    print(f"  Local Search Path: {settings.local_search_path}")
    print(f"  Localization Root: {settings.localization_root}")
    print(f"  S3 Enabled: {settings.enable_s3}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  Platform Enabled: {settings.enable_dx}")
    print(f"  Platform API Server: {settings.dx_api_server_url}")
    print(f"  Platform Project: {settings.dx_project}")
    print(f"  Results Per Call Limit: {settings.dx_results_per_call_limit}")
    print(f"  Max Workers: {settings.max_workers}")


@cli.command()
@click.argument("uri")
def resolve(uri):
    """Resolve URI and print what is known about it"""
    with create_resolver() as resolver:
        try:
            source = resolver.resolve(uri)
            print(f"Address: {source.address}")
            print(f"  Name: {source.name}")
            print(f"  Folder: {source.folder}")
            print(f"  Container: {source.container}")
            print(f"  Version: {source.version}")
            if isinstance(source, ReadableFileSource) and source.exists:
                print(f"  Size: {source.size}")
        except FileAccessError as e:
            raise click.ClickException(str(e))


@cli.command()
@click.argument("uri")
@click.option("--recursive", is_flag=True, help="List every descendant")
def ls(uri, recursive):
    """List the folder at URI"""
    with create_resolver() as resolver:
        try:
            folder = resolver.resolve_directory(uri)
            if not isinstance(folder, DirectoryFileSource):
                raise click.ClickException(f"{uri} cannot be listed")
            for child in folder.listing(recursive=recursive):
                suffix = "/" if child.is_directory else ""
                print(f"{folder.relativize(child).rstrip('/')}{suffix}")
        except FileAccessError as e:
            raise click.ClickException(str(e))


@cli.command()
@click.argument("uris", nargs=-1, required=True)
@click.option("--root", "root_dir", type=click.Path(file_okay=False), default=None,
              help="Localization root (defaults to the configured localization_root)")
@click.option("--overwrite", is_flag=True, help="Overwrite files that already exist")
def localize(uris, root_dir, overwrite):
    """Download URIS under a local root without name collisions"""
    with create_resolver() as resolver:
        try:
            sources = [resolver.resolve(uri) for uri in uris]
            disambiguator = LocalizationDisambiguator.from_settings(root_dir)
            for source, path in localize_all(sources, disambiguator, overwrite=overwrite).items():
                print(f"{source.address} -> {path}")
        except (FileAccessError, ValueError) as e:
            raise click.ClickException(str(e))


if __name__ == "__main__":
    cli()
