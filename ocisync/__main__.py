import logging
import signal
import threading
from pathlib import Path

import click

from ocisync.errors import OCISyncError
from ocisync.oci import MatchOpt, Platform, Reference, Registry, resolve_descriptor
from ocisync.sync import CleanupEngine, Config, ConfigTagSet, SyncIndex, filter_tag_list


def _parse_platform(ctx, param, value):
    if value is None:
        return None
    try:
        return Platform.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _parse_annotations(ctx, param, value):
    annotations = {}
    for item in value:
        key, sep, val = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}")
        annotations[key] = val
    return annotations or None


@click.group()
@click.option("-d", "--debug", help="Debug output", is_flag=True)
def cli(debug: bool):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option(
    "-c",
    "--config",
    "config_path",
    help="Sync configuration file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option("--target", help="Only clean up this target", default=None)
@click.option("--dry-run", help="Log deletions without deleting", is_flag=True)
def cleanup(config_path: Path, target: str | None, dry_run: bool):
    """Delete target tags that no sync rule wants."""
    config = Config.load(config_path)
    index = SyncIndex.from_config(config)
    if target is not None and not index.rules_for(target):
        raise click.BadParameter(f"no sync rule targets {target}", param_hint="--target")

    # Stop between deletions on the first Ctrl-C
    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
    try:
        with Registry(hosts=config.hosts()) as registry:
            engine = CleanupEngine(registry, index, dry_run=dry_run)
            if target is None:
                reports = engine.run(cancel=cancel)
            else:
                rule = index.rules_for(target)[0]
                reports = [engine.cleanup_tags(rule, target, cancel=cancel)]
    finally:
        signal.signal(signal.SIGINT, previous)

    failed = False
    for report in reports:
        if dry_run:
            summary = f"{len(report.scheduled)} to delete"
        else:
            summary = f"{len(report.deleted)} deleted"
        click.echo(
            f"{report.target}: {summary}, "
            f"{len(report.excluded)} excluded, {len(report.failures)} failed"
        )
        for failure in report.failures:
            click.echo(f"  {failure}", err=True)
        failed = failed or not report.ok
    if failed:
        raise SystemExit(1)


@cli.command()
@click.argument("reference")
@click.option("--allow", help="Allow regex", multiple=True)
@click.option("--deny", help="Deny regex", multiple=True)
@click.option("--semver-range", help="Semver range", default="")
@click.option("-u", "--username", help="Username", default=None)
@click.option("-p", "--password", help="Password", default=None)
@click.option("--insecure", help="Use plain http", is_flag=True)
def tags(reference, allow, deny, semver_range, username, password, insecure):
    """List the tags of a repository matching the filters."""
    ref = Reference.from_string(reference)
    hosts = {
        ref.registry: {"username": username, "password": password, "insecure": insecure}
    }
    tag_set = ConfigTagSet(allow=list(allow), deny=list(deny), semverRange=semver_range)
    with Registry(hosts=hosts) as registry:
        for tag in filter_tag_list(tag_set, registry.list_tags(ref)):
            click.echo(tag)


@cli.command()
@click.argument("reference")
@click.option("--platform", help="os/arch[/variant]", callback=_parse_platform)
@click.option("--artifact-type", help="Artifact type", default="")
@click.option(
    "--annotation", help="KEY=VALUE", multiple=True, callback=_parse_annotations
)
@click.option("--sort-annotation", help="Annotation to sort on", default="")
@click.option("--sort-desc", help="Sort descending", is_flag=True)
@click.option("-u", "--username", help="Username", default=None)
@click.option("-p", "--password", help="Password", default=None)
@click.option("--insecure", help="Use plain http", is_flag=True)
def search(
    reference,
    platform,
    artifact_type,
    annotation,
    sort_annotation,
    sort_desc,
    username,
    password,
    insecure,
):
    """Select a manifest from an index and print its descriptor."""
    ref = Reference.from_string(reference)
    hosts = {
        ref.registry: {"username": username, "password": password, "insecure": insecure}
    }
    opt = MatchOpt(
        platform=platform,
        annotations=annotation,
        artifact_type=artifact_type,
        sort_annotation=sort_annotation,
        sort_desc=sort_desc,
    )
    with Registry(hosts=hosts) as registry:
        try:
            descriptor = resolve_descriptor(registry, ref, opt)
        except OCISyncError as e:
            raise click.ClickException(str(e)) from e
    click.echo(descriptor.model_dump_json(exclude_none=True, by_alias=True, indent=2))


if __name__ == "__main__":
    cli()
