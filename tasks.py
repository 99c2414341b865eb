# type: ignore
import os

from invoke import task


@task
def venv(ctx):
    """Create .venv with the package and its test and dev extras."""
    ctx.run("uv venv")
    ctx.run("uv pip install -e '.[test,dev]'")


@task
def clean(ctx):
    """Remove untracked files, after showing what would go."""
    ctx.run("git clean -nfdx")

    response = (
        input("Are you sure you want to remove all untracked files? (y/n) [n]: ")
        .strip()
        .lower()
    )
    if response == "y":
        ctx.run("git clean -fdx")


@task
def lint(ctx):
    """Ruff and mypy over the sources."""
    ctx.run("ruff check src tests", pty=True)
    ctx.run("ruff format --check src tests", pty=True)
    ctx.run("mypy src", pty=True)


@task
def test(ctx, k=None):
    """Run tests with coverage; -k selects by keyword."""
    select = f" -k {k}" if k else ""
    ctx.run(
        f"pytest --cov=wledlink --cov-report=term-missing{select}", pty=True
    )


@task
def mock(ctx, name="WLED Mock", port=8080):
    """Serve a fake WLED device on localhost."""
    ctx.run(f"wledlink --verbose mock --name '{name}' --port {port}", pty=True)


@task
def build_package(ctx):
    """Build sdist and wheel into dist/."""
    ctx.run("rm -rf dist")
    ctx.run("uv build")


@task
def release(ctx):
    """Build and publish to PyPI."""
    token = os.getenv("PYPI_TOKEN")
    if not token:
        raise ValueError("PYPI_TOKEN environment variable is not set")

    ctx.run("invoke build-package")
    ctx.run(f"uv publish --token {token}")
