import asyncio
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError
import typer

from s3cache.__about__ import __version__ as version
from s3cache.cli.console import reporting_errors, set_verbosity, user_info
from s3cache.cli.settings import Settings
from s3cache.cli.state import AppState
from s3cache.download import download as download_snapshot
from s3cache.errors import ConfigError
from s3cache.snapshots import delete_snapshot, list_snapshots, read_manifest
from s3cache.upload import UploadStats, upload as upload_snapshot
from s3cache.util import human_size
from s3cache.walk import walk

app = typer.Typer(no_args_is_help=True)
""" Entrypoint for CLI tool. """


def version_callback(value: bool):
    if value:
        typer.echo(version)
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs."),
    bucket: Optional[str] = typer.Option(None, help="The S3 bucket."),
    endpoint: Optional[str] = typer.Option(None, help="The S3 endpoint URL."),
    region: Optional[str] = typer.Option(None, help="The S3 region."),
    create_bucket: Optional[bool] = typer.Option(
        None, "--create-bucket", help="Create the bucket if it is missing."
    ),
    concurrency: Optional[int] = typer.Option(
        None, min=1, help="Maximum number of files transferred at once."
    ),
    store_dir: Optional[Path] = typer.Option(
        None, help="Use a local directory as the store instead of S3."
    ),
):
    """Deduplicating store in S3 for CI artifacts.

    Connection settings are also read from S3_CACHE_* environment variables and a .env file.
    """
    set_verbosity(verbose)
    overrides = dict(
        bucket=bucket,
        endpoint=endpoint,
        region=region,
        create_bucket=create_bucket,
        concurrency=concurrency,
        store_dir=store_dir,
    )
    with reporting_errors():
        try:
            ctx.obj = Settings(**{k: v for k, v in overrides.items() if v is not None})
        except ValidationError as err:
            problems = "; ".join(
                f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in err.errors()
            )
            raise ConfigError(f"invalid settings: {problems}") from err


def get_state(ctx: typer.Context) -> AppState:
    return AppState.of_settings(ctx.obj)


@app.command("list")
def list_(
    ctx: typer.Context,
    name: Optional[str] = typer.Option(
        None, help="List the files of this snapshot instead of the snapshot names."
    ),
):
    """List snapshots, or the files in one snapshot."""
    with reporting_errors():
        store = get_state(ctx).store
        if name is None:
            for n in list_snapshots(store):
                print(n)
            return
        manifest = read_manifest(store, name)
        width = max([30, *(len(e.path) for e in manifest)])
        for e in manifest:
            print(f"{e.path:<{width}} {e.mode:04o} {human_size(e.size):>10}")


@app.command()
def upload(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., help="Files to upload."),
    name: str = typer.Option(..., help="The name of the snapshot."),
    recurse: bool = typer.Option(
        False, "--recurse", "-r", help="Upload the contents of directories."
    ),
):
    """Upload files as a named snapshot, replacing any snapshot with that name."""
    with reporting_errors():
        state = get_state(ctx)
        stats = UploadStats()
        manifest = asyncio.run(
            upload_snapshot(
                state.store,
                name,
                walk(paths, recurse=recurse),
                concurrency=state.settings.concurrency,
                stats=stats,
            )
        )
        user_info(
            f"Uploaded {name}: {len(manifest)} files ({human_size(manifest.total_size)}),",
            f"{stats.uploaded} new blobs ({human_size(stats.bytes_uploaded)}), {stats.present} already stored.",
        )


@app.command()
def download(
    ctx: typer.Context,
    name: str = typer.Option(..., help="The name of the snapshot."),
    outpath: Path = typer.Option(
        Path("."), help="Directory to restore the snapshot into."
    ),
):
    """Download a snapshot, restoring file contents and permissions."""
    with reporting_errors():
        state = get_state(ctx)
        asyncio.run(
            download_snapshot(
                state.store, name, outpath, concurrency=state.settings.concurrency
            )
        )


@app.command()
def delete(
    ctx: typer.Context,
    name: str = typer.Option(..., help="The name of the snapshot."),
    missing_ok: bool = typer.Option(
        False, "--missing-ok", help="Don't fail if the snapshot doesn't exist."
    ),
):
    """Delete a snapshot. Its files stay in the store, other snapshots may share them."""
    with reporting_errors():
        delete_snapshot(get_state(ctx).store, name, missing_ok=missing_ok)


if __name__ == "__main__":
    app()
