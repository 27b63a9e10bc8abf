#!/usr/bin/env python
import logging
import os
from importlib.metadata import PackageNotFoundError, version
from typing import Annotated, Optional

import typer

from .common import setup_logging
from .lib import OUTPUT_FILE, CacheDomainsError, compile_dataset, write_output
from .sync import GitSync, HttpSync, prepare_work_dir, sync_dataset

DEFAULT_REPO = "https://github.com/uklans/cache-domains.git"
DEFAULT_WORK_DIR = "cachedomains"
DEFAULT_TIMEOUT = 30.0

app = typer.Typer(
    pretty_exceptions_enable=False,
    help="Turn cache-domains git repo into VCL",
    no_args_is_help=True,
)


def _version(value: bool):
    if value:
        try:
            typer.echo(version("cache-domains-vcl"))
        except PackageNotFoundError:
            typer.echo("unknown")
        raise typer.Exit()


@app.callback()
def main(
    *,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
    show_version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=_version, is_eager=True),
    ] = None,
):
    setup_logging(verbose)


@app.command()
def fetch(
    *,
    repo: Annotated[
        str,
        typer.Option(
            "--repo", "-r", envvar="CACHE_DOMAINS_REPO", help="The git repo to clone"
        ),
    ] = DEFAULT_REPO,
    work_dir: Annotated[
        str,
        typer.Option(
            "--work-dir",
            "-w",
            envvar="CACHE_DOMAINS_WORK_DIR",
            help="Where the repo is cloned to and cachedomains.vcl is written to",
        ),
    ] = DEFAULT_WORK_DIR,
    http: Annotated[
        bool, typer.Option(help="Treat --repo as a raw-file base URL, no git")
    ] = False,
    timeout: float = DEFAULT_TIMEOUT,
):
    """Sync the dataset into WORK_DIR/repo and write WORK_DIR/cachedomains.vcl."""
    try:
        repo_dir = prepare_work_dir(work_dir)
        syncer = HttpSync(timeout=timeout) if http else GitSync()
        sync_dataset(syncer, repo, repo_dir)
        vcl = compile_dataset(repo_dir)
        output = os.path.join(work_dir, OUTPUT_FILE)
        write_output(vcl, output)
    except CacheDomainsError as e:
        logging.error("%s", e)
        raise typer.Exit(1)
    typer.echo(f"Wrote {output}", err=True)


@app.command(name="compile")
def compile_(
    dataset_dir: str,
    *,
    output: Annotated[
        Optional[str], typer.Option("--output", "-o", help="Defaults to stdout")
    ] = None,
):
    """Compile an existing dataset directory."""
    try:
        vcl = compile_dataset(dataset_dir)
        if output is not None:
            write_output(vcl, output)
    except CacheDomainsError as e:
        logging.error("%s", e)
        raise typer.Exit(1)
    if output is None:
        typer.echo(vcl, nl=False)
    else:
        typer.echo(f"Wrote {output}", err=True)


if __name__ == "__main__":
    app()
