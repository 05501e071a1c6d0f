from pathlib import Path

THIS_DIR = Path(__file__).parent
PROJECT_DIR = (THIS_DIR / "../").resolve()

TEST_BUCKET_NAME = "some-test-bucket"
TEST_REGION = "us-east-1"

# platform ids are a class prefix plus 24 alphanumeric characters
TEST_PROJECT = "project-" + "A" * 24
OTHER_PROJECT = "project-" + "B" * 24
WORKSPACE = "container-" + "W" * 24


def make_file_id(n: int) -> str:
    return f"file-{n:024d}"
