"""
CLI for running and operating the podcast alarm
"""

import signal
import sys
import threading
import time

import click
from pydantic import ValidationError

from .config import AlarmServiceConfig, WEEKDAYS
from .errors import AlarmError
from .logging_utils import setup_logging, get_logger
from .service import AlarmService

logger = get_logger(__name__)

DAY_ALIASES = {day[:3]: day for day in WEEKDAYS}


def _service(ctx) -> AlarmService:
    if ctx.obj.get('service') is None:
        ctx.obj['service'] = AlarmService(ctx.obj['config'])
    return ctx.obj['service']


@click.group()
@click.option('--data-dir', help='Directory holding the alarm data files')
@click.option('--log-level', default=None, help='Log level')
@click.option('--log-format', default=None, type=click.Choice(['text', 'json']), help='Log format')
@click.pass_context
def cli(ctx, data_dir, log_level, log_format):
    """Podcast Alarm CLI - run and control the wake-up alarm"""
    config = AlarmServiceConfig.from_env()
    if data_dir:
        config.data_dir = data_dir
    if log_level:
        config.log_level = log_level
    if log_format:
        config.log_format = log_format

    setup_logging(log_level=config.log_level, log_format=config.log_format)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.pass_context
def run(ctx):
    """Run the alarm scheduler until interrupted"""
    service = _service(ctx)
    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    service.start()
    status = service.get_status()
    click.echo(f"Alarm service running (next alarm: {status.next_alarm or 'none'})")
    stop_event.wait()
    service.shutdown()


@cli.command()
@click.pass_context
def status(ctx):
    """Show alarm configuration and next fire time"""
    status = _service(ctx).get_status()

    click.echo("Podcast Alarm Status:")
    click.echo(f"  Enabled: {'Yes' if status.enabled else 'No'}")
    click.echo(f"  Time: {status.time or 'not configured'}")
    click.echo(f"  Volume: {status.volume if status.volume is not None else '-'}")
    if status.scheduled_days:
        days = [day[:3] for day, on in status.scheduled_days.items() if on]
        click.echo(f"  Days: {', '.join(days) or 'none'}")
    click.echo(f"  Next alarm: {status.next_alarm.isoformat() if status.next_alarm else 'none'}")
    click.echo(f"  Speakers: {len(status.speakers)}")
    for speaker in status.speakers:
        click.echo(f"    - {speaker.name} ({speaker.id})")


@cli.command()
@click.option('--stop-after', type=float, help='Stop playback after this many seconds')
@click.pass_context
def test(ctx, stop_after):
    """Run the alarm now and report the result"""
    service = _service(ctx)
    try:
        session = service.pipeline.trigger()
    except AlarmError as e:
        click.echo(f"Alarm failed: {e}")
        sys.exit(1)

    if session is None:
        click.echo("Alarm is disabled or not scheduled for today")
        return

    click.echo(f"Playing on {session.coordinator_id} ({session.state.value}, {len(session.member_ids)} speaker(s))")
    for entry in service.recent_logs(1):
        for episode in entry.episodes:
            click.echo(f"  - {episode}")

    if stop_after is not None:
        time.sleep(stop_after)
        service.stop()
        click.echo("Playback stopped")


@cli.command()
@click.pass_context
def discover(ctx):
    """Discover Sonos speakers on the network"""
    speakers = _service(ctx).discover_speakers()

    if speakers:
        click.echo(f"Found {len(speakers)} Sonos speakers:")
        for speaker in speakers:
            click.echo(f"  - {speaker.name} [{speaker.id}] {speaker.model or ''} at {speaker.ip}")
    else:
        click.echo("No Sonos speakers found")


@cli.command()
@click.option('--limit', '-n', default=10, help='Number of entries')
@click.pass_context
def logs(ctx, limit):
    """Show recent alarm runs"""
    entries = _service(ctx).recent_logs(limit)
    if not entries:
        click.echo("No alarm runs recorded")
        return
    for entry in entries:
        outcome = "OK" if entry.success else f"FAILED: {entry.error_message}"
        click.echo(f"{entry.triggered_at.isoformat()}  {outcome}")
        for episode in entry.episodes:
            click.echo(f"    - {episode}")


@cli.command()
@click.option('--time', 'time_', help='Wake time as HH:MM')
@click.option('--enable/--disable', default=None, help='Turn the alarm on or off')
@click.option('--volume', type=int, help='Volume level (0-100)')
@click.option('--days', help='Comma separated days, e.g. mon,tue,wed')
@click.pass_context
def config(ctx, time_, enable, volume, days):
    """Update alarm settings"""
    changes = {}
    if time_ is not None:
        changes['time'] = time_
    if enable is not None:
        changes['enabled'] = enable
    if volume is not None:
        changes['volume'] = volume
    if days is not None:
        chosen = {DAY_ALIASES.get(d.strip().lower()[:3]) for d in days.split(',') if d.strip()}
        if None in chosen:
            click.echo(f"Unknown day in '{days}'")
            sys.exit(1)
        changes.update({day: day in chosen for day in WEEKDAYS})

    try:
        updated = _service(ctx).update_config(**changes)
    except ValidationError as e:
        click.echo(f"Invalid configuration: {e.errors()[0]['msg']}")
        sys.exit(1)
    click.echo(f"Alarm set for {updated.time} ({'enabled' if updated.enabled else 'disabled'}, volume {updated.volume}%)")


@cli.group()
def speakers():
    """Manage alarm speakers"""


@speakers.command('select')
@click.argument('speaker_ids', nargs=-1, required=True)
@click.pass_context
def select_speakers(ctx, speaker_ids):
    """Select speakers by id; the first one coordinates the group"""
    service = _service(ctx)
    service.discover_speakers()
    for speaker in service.select_speakers(list(speaker_ids)):
        click.echo(f"Selected {speaker.name} ({speaker.id})")


@cli.group()
def feeds():
    """Manage podcast feeds"""


@feeds.command('add')
@click.argument('url')
@click.option('--name', help='Display name (feed title if omitted)')
@click.pass_context
def add_feed(ctx, url, name):
    """Subscribe to a podcast feed"""
    try:
        feed = _service(ctx).add_feed(url, name)
    except AlarmError as e:
        click.echo(f"Could not add feed: {e}")
        sys.exit(1)
    click.echo(f"Added feed {feed.id}: {feed.name}")


@feeds.command('list')
@click.pass_context
def list_feeds(ctx):
    """List subscribed feeds"""
    subscribed = _service(ctx).store.list_feeds()
    if not subscribed:
        click.echo("No podcast feeds configured")
    for feed in subscribed:
        click.echo(f"  {feed.id}: {feed.name} - {feed.url}")


@feeds.command('remove')
@click.argument('feed_id', type=int)
@click.pass_context
def remove_feed(ctx, feed_id):
    """Unsubscribe from a feed"""
    if not _service(ctx).store.remove_feed(feed_id):
        click.echo(f"Feed {feed_id} not found")
        sys.exit(1)
    click.echo(f"Removed feed {feed_id}")


@feeds.command('preview')
@click.argument('url')
@click.option('--limit', '-n', default=5, help='Number of episodes')
@click.pass_context
def preview_feed(ctx, url, limit):
    """Show the newest playable episodes of a feed URL"""
    try:
        preview = _service(ctx).preview_feed(url, limit)
    except AlarmError as e:
        click.echo(f"Could not read feed: {e}")
        sys.exit(1)
    click.echo(f"{preview['title']} ({preview['total_episodes']} playable episodes)")
    for episode in preview['preview_episodes']:
        click.echo(f"  - {episode['title']} ({episode['published'] or 'undated'})")


@cli.group()
def played():
    """Inspect or reset played-episode marks"""


@played.command('list')
@click.option('--limit', '-n', default=20, help='Number of entries')
@click.pass_context
def list_played(ctx, limit):
    """Show the most recently played episodes"""
    for record in _service(ctx).store.played_episodes(limit):
        click.echo(f"{record.played_at.isoformat()}  feed {record.feed_id}: {record.title}")


@played.command('clear')
@click.option('--feed-id', type=int, help='Only clear marks for this feed')
@click.pass_context
def clear_played(ctx, feed_id):
    """Forget played marks so episodes can be queued again"""
    removed = _service(ctx).store.clear_played(feed_id)
    click.echo(f"Cleared {removed} played mark(s)")


if __name__ == '__main__':
    cli()
