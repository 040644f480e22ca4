#!/usr/bin/env python3
"""
livebridge - run a live script against a demo world.

Spawns an in-memory world, loads a script, and ticks it at a fixed rate.
Response text is printed whenever it changes. With --watch the script file
is reloaded when it changes on disk; with --serve the remote editor is
started so the script can be edited over HTTP while it runs.
"""

import argparse
import dataclasses
import sys
import time

from livebridge.components import Quat, Transform, Vec3, Velocity
from livebridge.config import load_config
from livebridge.errors import ScriptValidationError
from livebridge.instance import ScriptInstance
from livebridge.logging import (
    close_all_sinks,
    configure_logging,
    create_sink_for_environment,
    get_logger,
    register_sink,
)
from livebridge.script_loader import ScriptLoader, ScriptWatcher
from livebridge.ui.adapter import EditorWidget
from livebridge.world import InMemoryWorld

log = get_logger('cli')


def build_world(count: int) -> InMemoryWorld:
    """World with `count` entities spread along x, each with a transform and velocity."""
    world = InMemoryWorld()
    for i in range(count):
        world.spawn(
            transform=Transform(position=Vec3(x=float(i)), orientation=Quat()),
            velocity=Velocity(),
        )
    return world


def main(argv=None) -> int:
    """Main entry point for the livebridge runner."""
    parser = argparse.ArgumentParser(
        description='Run a live Lua script against a demo entity world',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a script for 100 ticks
  livebridge scripts/spinner.lua --ticks 100

  # Edit on disk while it runs
  livebridge scripts/spinner.lua.yaml --watch

  # Remote editor on http://127.0.0.1:8765/api/widget
  livebridge scripts/spinner.lua --serve

  # Inspect state after one tick
  livebridge scripts/counter.lua --ticks 1 --command "state.x"
        """
    )

    parser.add_argument(
        'script',
        help='Script file (.lua or .lua.yaml)'
    )
    parser.add_argument(
        '--entities',
        type=int,
        default=3,
        help='Entities to spawn in the demo world (default: 3)'
    )
    parser.add_argument(
        '--ticks',
        type=int,
        default=0,
        help='Ticks to run, 0 = until interrupted (default: 0)'
    )
    parser.add_argument(
        '--rate',
        type=float,
        default=None,
        help='Ticks per second (default: LIVEBRIDGE_TICK_RATE or 30)'
    )
    parser.add_argument(
        '--watch',
        action='store_true',
        help='Reload the script when the file changes'
    )
    parser.add_argument(
        '--serve',
        action='store_true',
        help='Start the remote editor (LIVEBRIDGE_WEB_HOST / LIVEBRIDGE_WEB_PORT)'
    )
    parser.add_argument(
        '--command',
        type=str,
        default=None,
        help='One-shot command evaluated on the first tick'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Default log level for all modules'
    )

    args = parser.parse_args(argv)

    if args.log_level:
        configure_logging(level=args.log_level)

    config = load_config()
    if args.rate is not None:
        if args.rate <= 0:
            parser.error('--rate must be positive')
        config = dataclasses.replace(config, tick_rate=args.rate)

    loader = ScriptLoader()
    try:
        script = loader.load_file(args.script)
    except (FileNotFoundError, ValueError, ScriptValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    register_sink('ticks', create_sink_for_environment('ticks', session_name=script.name))

    world = build_world(args.entities)
    instance = ScriptInstance(source=script.code, config=config, name=script.name)
    print(f"[0] {instance.response_text}")
    instance.add_response_listener(
        lambda text: print(f"[{instance.tick_count}] {text}")
    )

    widget = EditorWidget(instance)
    watcher = ScriptWatcher(args.script, loader) if args.watch else None

    controller = None
    if args.serve:
        from livebridge.web_controller import RemoteController
        controller = RemoteController(widget, host=config.web_host, port=config.web_port)
        controller.start()

    if args.command:
        instance.queue_command(args.command)

    interval = 1.0 / config.tick_rate
    try:
        while args.ticks <= 0 or instance.tick_count < args.ticks:
            started = time.monotonic()

            if watcher is not None:
                changed = watcher.poll()
                if changed is not None:
                    instance.propose(changed)

            if controller is not None:
                controller.apply_pending()
            widget.poll(world)

            instance.tick(world)

            if controller is not None:
                controller.publish()

            remaining = interval - (time.monotonic() - started)
            if remaining > 0:
                time.sleep(remaining)
    except KeyboardInterrupt:
        log.info("Interrupted after %d ticks", instance.tick_count)
    finally:
        if controller is not None:
            controller.stop()
        close_all_sinks()

    return 0


if __name__ == "__main__":
    sys.exit(main())
