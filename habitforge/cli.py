#!/usr/bin/env python3
"""Command-line interface for HabitForge.

This module provides CLI commands for habits, habit events, notes and
tag playback. Uses only core/ and playback/ modules.

Commands:
    new-user                 Create a user
    list-habits              List all habits
    show-habit <id>          Show a habit with its events and statistics
    new-habit <name>         Create a habit
    delete-habit <id>        Delete a habit and its events
    hit <habit_id>           Record a HIT
    slip <habit_id>          Record a SLIP
    reflect <event_id> <note> Attach a reflection note to an event
    list-notes               List all notes
    show-note <id>           Show a note with its tags
    new-note [content]       Create a note
    delete-note <id>         Delete a note
    play-tags                Play selected note tags as audio/speech
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from habitforge.core.config import Config
from habitforge.core.database import Database, NotFoundError
from habitforge.core.gateways import SpeechSynthesisGateway
from habitforge.core.stats import habit_stats
from habitforge.core.validation import (
    ValidationError,
    validate_event_type,
    validate_required_string,
    validate_tags,
    validate_uuid_hex,
)
from habitforge.playback.players import MpvPlayer
from habitforge.playback.scheduler import PlaybackSnapshot, TagPlaybackScheduler
from habitforge.playback.speech_client import ApiSpeechClient, GatewaySpeechClient
from habitforge.playback.tags import SelectedTag, build_queue, lookup_tag, select_all_tags


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def format_event(event: Dict[str, Any]) -> str:
    """One line per event: timestamp, type, mood and reflection."""
    parts = [event["timestamp"], event["type"]]
    if event.get("mood") and event["mood"] != "null":
        parts.append(f"mood={event['mood']}")
    if event.get("intensity") is not None:
        parts.append(f"intensity={event['intensity']}")
    line = "  ".join(parts)
    if event.get("reflectionNote"):
        line += f"\n    {event['reflectionNote']}"
    return f"{event['id']}  {line}"


def format_habit(habit: Dict[str, Any], stats: Optional[Dict[str, Any]] = None) -> str:
    """Format a habit for display.

    Args:
        habit: Habit dictionary from database
        stats: Optional statistics from habit_stats()

    Returns:
        Formatted habit string
    """
    lines = [
        f"ID: {habit['id']}",
        f"Name: {habit['name']}",
        f"Created: {habit['createdAt']}",
    ]
    if habit.get("goalType"):
        lines.append(f"Goal type: {habit['goalType']}")
    if habit.get("microGoal"):
        lines.append(f"Micro goal: {habit['microGoal']}")
    if habit.get("triggers"):
        lines.append(f"Triggers: {', '.join(habit['triggers'])}")
    if stats is not None:
        lines.append(f"Hits: {stats['hits']}  Slips: {stats['slips']}")
        combo = stats["combo"]
        if combo:
            lines.append(f"Combo: {combo['count']}x {combo['type']}")
        if stats["score"]:
            lines.append(f"Score: {stats['score'][-1]['total']}")
    events = habit.get("events") or []
    if events:
        lines.append("\nEvents:")
        lines.extend(format_event(e) for e in events)
    return "\n".join(lines)


def format_note(note: Dict[str, Any]) -> str:
    """Format a single note for display, tags numbered by position."""
    lines = [
        f"ID: {note['id']}",
        f"Created: {note['createdAt']}",
    ]
    if note.get("updatedAt") and note["updatedAt"] != note["createdAt"]:
        lines.append(f"Modified: {note['updatedAt']}")
    lines.append(f"\n{note['content']}")
    if note.get("tags"):
        lines.append("\nTags:")
        for index, tag in enumerate(note["tags"]):
            lines.append(f"  [{index}] {tag['name']}")
    return "\n".join(lines)


# ============================================================================
# Users and habits
# ============================================================================


def cmd_new_user(db: Database, args: argparse.Namespace) -> int:
    """Create a user."""
    if not args.name and not args.email:
        print("Error: --name or --email is required.", file=sys.stderr)
        return 1
    user = db.create_user(name=args.name, email=args.email)
    if args.format == "json":
        print_json(user)
    else:
        print(f"Created user {user['id']}")
    return 0


def cmd_list_habits(db: Database, args: argparse.Namespace) -> int:
    """List all habits.

    Args:
        db: Database instance
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    habits = db.get_all_habits()

    if args.format == "json":
        print_json(habits)
        return 0

    if not habits:
        print("No habits found.")
        return 0

    for habit in habits:
        counts = habit_stats(habit)
        print(f"ID: {habit['id']} | {habit['name']} | hits {counts['hits']} / slips {counts['slips']}")
    return 0


def cmd_show_habit(db: Database, args: argparse.Namespace) -> int:
    """Show a habit with its events and statistics."""
    habit_id = validate_uuid_hex(args.habit_id, "habit_id")
    habit = db.get_habit(habit_id)
    if habit is None:
        print(f"Error: Habit with ID {habit_id} not found.", file=sys.stderr)
        return 1

    stats = habit_stats(habit)
    if args.format == "json":
        print_json({**habit, "stats": stats})
    else:
        print(format_habit(habit, stats))
    return 0


def cmd_new_habit(db: Database, args: argparse.Namespace) -> int:
    """Create a habit for the given user, or for the newest user."""
    name = validate_required_string(args.name, "name")
    if args.user_id:
        user_id = validate_uuid_hex(args.user_id, "user_id")
    else:
        user = db.get_latest_user()
        if user is None:
            print("Error: No users exist. Create one with new-user first.", file=sys.stderr)
            return 1
        user_id = user["id"]

    habit = db.create_habit(
        user_id,
        name,
        goalType=args.goal_type,
        microGoal=args.micro_goal,
        triggers=args.triggers or [],
        hitDefinition=args.hit_definition,
        slipDefinition=args.slip_definition,
    )
    if args.format == "json":
        print_json(habit)
    else:
        print(f"Created habit {habit['id']}")
    return 0


def cmd_delete_habit(db: Database, args: argparse.Namespace) -> int:
    """Delete a habit and its events."""
    habit_id = validate_uuid_hex(args.habit_id, "habit_id")
    if not db.delete_habit(habit_id):
        print(f"Error: Habit with ID {habit_id} not found.", file=sys.stderr)
        return 1
    print(f"Deleted habit {habit_id}")
    return 0


def cmd_record_event(db: Database, args: argparse.Namespace) -> int:
    """Record a HIT or SLIP (the subcommand name is the event type)."""
    habit_id = validate_uuid_hex(args.habit_id, "habit_id")
    event_type = validate_event_type(args.cli_command)
    event = db.create_event(
        habit_id,
        event_type,
        mood=args.mood,
        intensity=args.intensity,
        reflection_note=args.note,
    )
    if args.format == "json":
        print_json(event)
    else:
        print(f"Recorded {event_type} {event['id']}")
    return 0


def cmd_reflect(db: Database, args: argparse.Namespace) -> int:
    """Attach a reflection note to an event."""
    event_id = validate_uuid_hex(args.event_id, "event_id")
    event = db.set_reflection(event_id, args.note)
    if args.format == "json":
        print_json(event)
    else:
        print(f"Saved reflection for event {event_id}")
    return 0


# ============================================================================
# Notes
# ============================================================================


def cmd_list_notes(db: Database, args: argparse.Namespace) -> int:
    """List all notes, newest first."""
    notes = db.get_all_notes()

    if args.format == "json":
        print_json(notes)
        return 0

    if not notes:
        print("No notes found.")
        return 0

    for i, note in enumerate(notes):
        if i > 0:
            print("\n" + "=" * 60 + "\n")
        # Show truncated version in list
        content = note["content"]
        if len(content) > 100:
            content = content[:100] + "..."
        print(f"ID: {note['id']} | Created: {note['createdAt']}")
        if note["tags"]:
            print(f"Tags: {', '.join(tag['name'] for tag in note['tags'])}")
        print(content)
    return 0


def cmd_show_note(db: Database, args: argparse.Namespace) -> int:
    """Show details of a specific note."""
    note_id = validate_uuid_hex(args.note_id, "note_id")
    note = db.get_note(note_id)
    if note is None:
        print(f"Error: Note with ID {note_id} not found.", file=sys.stderr)
        return 1

    if args.format == "json":
        print_json(note)
    else:
        print(format_note(note))
    return 0


def cmd_new_note(db: Database, args: argparse.Namespace) -> int:
    """Create a new note. Content comes from the argument or stdin."""
    content = args.content
    if content is None:
        if sys.stdin.isatty():
            print("Error: No content provided. Pass it as an argument or pipe it to stdin.", file=sys.stderr)
            return 1
        content = sys.stdin.read().strip()

    note = db.create_note(content, validate_tags(args.tags or []))
    if args.format == "json":
        print_json(note)
    else:
        print(f"Created note {note['id']}")
    return 0


def cmd_delete_note(db: Database, args: argparse.Namespace) -> int:
    """Delete a note and its tags."""
    note_id = validate_uuid_hex(args.note_id, "note_id")
    if not db.delete_note(note_id):
        print(f"Error: Note with ID {note_id} not found.", file=sys.stderr)
        return 1
    print(f"Deleted note {note_id}")
    return 0


# ============================================================================
# Tag playback
# ============================================================================


def parse_tag_selection(db: Database, note_specs: List[str], select_all: bool) -> List[SelectedTag]:
    """Turn --note ID[:i,j] options (or --all) into a playback queue.

    A note without indices selects all of its tags.

    Raises:
        ValidationError: If an ID or index is malformed
        NotFoundError: If a note does not exist
    """
    if select_all:
        return select_all_tags(db.get_all_notes())

    selection: List[SelectedTag] = []
    for spec in note_specs:
        note_part, _, index_part = spec.partition(":")
        note_id = validate_uuid_hex(note_part, "note")
        note = db.get_note(note_id)
        if note is None:
            raise NotFoundError("Note", note_id)
        if not index_part:
            selection.extend(SelectedTag(note_id, i) for i in range(len(note["tags"])))
            continue
        for raw_index in index_part.split(","):
            try:
                index = int(raw_index)
            except ValueError:
                raise ValidationError("note", f"invalid tag index {raw_index!r} in {spec!r}") from None
            if index < 0:
                raise ValidationError("note", f"tag index must not be negative in {spec!r}")
            selection.append(SelectedTag(note_id, index))
    return build_queue(selection)


async def _play_until_idle(scheduler: TagPlaybackScheduler) -> None:
    scheduler.start()
    await scheduler.wait_idle()


def cmd_play_tags(db: Database, config: Config, args: argparse.Namespace) -> int:
    """Play the selected tags one after another."""
    if not args.note_specs and not args.all:
        print("Error: Select tags with --note ID[:i,j] or --all.", file=sys.stderr)
        return 1

    selection = parse_tag_selection(db, args.note_specs or [], args.all)
    if not selection:
        print("No tags selected.")
        return 0

    timeout = config.get_int("request_timeout", 30)
    if args.api_url:
        synthesize = ApiSpeechClient(args.api_url, timeout=timeout)
    else:
        synthesize = GatewaySpeechClient(SpeechSynthesisGateway.from_config(config))

    media_directory = config.get_media_directory()
    scheduler = TagPlaybackScheduler(
        notes_provider=db.get_all_notes,
        selection_provider=lambda: selection,
        synthesize=synthesize,
        player_factory=lambda source: MpvPlayer(source, media_directory),
        hindi_voice_id=config.get("hindi_voice_id"),
        tag_repeat_count=args.tag_repeat or config.get_int("tag_repeat_count", 1),
        sequence_repeat_count=args.sequence_repeat or config.get_int("sequence_repeat_count", 1),
    )

    started: List[SelectedTag] = []
    # Every play of a tag, repeats included, runs under its own session id
    reported_sessions = set()

    def report(snapshot: PlaybackSnapshot) -> None:
        tag = snapshot.current_tag
        if tag is None or scheduler.session_id in reported_sessions:
            return
        reported_sessions.add(scheduler.session_id)
        started.append(tag)
        if args.format == "text":
            value = lookup_tag(db.get_all_notes(), tag)
            print(f"Playing {tag}: {value if value is not None else '(missing)'}")

    scheduler.subscribe(report)

    try:
        asyncio.run(_play_until_idle(scheduler))
    except KeyboardInterrupt:
        print("Stopped.", file=sys.stderr)
        return 130

    if args.format == "json":
        print_json({"selected": [str(t) for t in selection], "played": [str(t) for t in started]})
    else:
        print(f"Finished: {len(started)} tag plays")
    return 0


def add_cli_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add CLI subparser and its nested subcommands.

    Args:
        subparsers: Parent subparsers object to add CLI parser to
    """
    cli_parser = subparsers.add_parser(
        "cli",
        help="Command-line interface",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    cli_parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)"
    )

    # Nested subcommands for CLI
    cli_subparsers = cli_parser.add_subparsers(dest="cli_command", help="CLI commands")

    # new-user command
    new_user_parser = cli_subparsers.add_parser("new-user", help="Create a user")
    new_user_parser.add_argument("--name", type=str, help="User name")
    new_user_parser.add_argument("--email", type=str, help="User email")

    # list-habits command
    cli_subparsers.add_parser("list-habits", help="List all habits")

    # show-habit command
    show_habit_parser = cli_subparsers.add_parser(
        "show-habit",
        help="Show a habit with its events and statistics"
    )
    show_habit_parser.add_argument("habit_id", type=str, help="ID of the habit (UUID hex string)")

    # new-habit command
    new_habit_parser = cli_subparsers.add_parser("new-habit", help="Create a habit")
    new_habit_parser.add_argument("name", type=str, help="Habit name")
    new_habit_parser.add_argument(
        "--user",
        dest="user_id",
        type=str,
        help="Owner user ID (default: the newest user)"
    )
    new_habit_parser.add_argument("--goal-type", type=str, help="Goal type, e.g. quit or build")
    new_habit_parser.add_argument("--micro-goal", type=str, help="Smallest daily goal")
    new_habit_parser.add_argument(
        "--trigger",
        dest="triggers",
        action="append",
        help="Trigger (may be given several times)"
    )
    new_habit_parser.add_argument("--hit-definition", type=str, help="What counts as a hit")
    new_habit_parser.add_argument("--slip-definition", type=str, help="What counts as a slip")

    # delete-habit command
    delete_habit_parser = cli_subparsers.add_parser("delete-habit", help="Delete a habit and its events")
    delete_habit_parser.add_argument("habit_id", type=str, help="ID of the habit (UUID hex string)")

    # hit / slip commands
    for event_command in ("hit", "slip"):
        event_parser = cli_subparsers.add_parser(
            event_command,
            help=f"Record a {event_command.upper()} for a habit"
        )
        event_parser.add_argument("habit_id", type=str, help="ID of the habit (UUID hex string)")
        event_parser.add_argument("--mood", type=str, help="Mood at the time")
        event_parser.add_argument("--intensity", type=int, help="Craving intensity")
        event_parser.add_argument("--note", type=str, help="Reflection note")

    # reflect command
    reflect_parser = cli_subparsers.add_parser("reflect", help="Attach a reflection note to an event")
    reflect_parser.add_argument("event_id", type=str, help="ID of the event (UUID hex string)")
    reflect_parser.add_argument("note", type=str, help="Reflection text")

    # list-notes command
    cli_subparsers.add_parser("list-notes", help="List all notes")

    # show-note command
    show_parser = cli_subparsers.add_parser("show-note", help="Show details of a specific note")
    show_parser.add_argument("note_id", type=str, help="ID of the note to show (UUID hex string)")

    # new-note command
    new_note_parser = cli_subparsers.add_parser("new-note", help="Create a new note")
    new_note_parser.add_argument(
        "content",
        nargs="?",
        type=str,
        help="Note content (reads from stdin if not provided)"
    )
    new_note_parser.add_argument(
        "--tag",
        dest="tags",
        action="append",
        help="Tag text, image filename or audio filename (in playback order, repeatable)"
    )

    # delete-note command
    delete_note_parser = cli_subparsers.add_parser("delete-note", help="Delete a note and its tags")
    delete_note_parser.add_argument("note_id", type=str, help="ID of the note (UUID hex string)")

    # play-tags command
    play_parser = cli_subparsers.add_parser("play-tags", help="Play note tags as audio and speech")
    play_parser.add_argument(
        "--note",
        dest="note_specs",
        action="append",
        metavar="ID[:i,j]",
        help="Note to play, optionally limited to tag indices (repeatable)"
    )
    play_parser.add_argument("--all", action="store_true", help="Play every tag of every note")
    play_parser.add_argument(
        "--api-url",
        type=str,
        default=None,
        help="Synthesize speech through a running HabitForge server, e.g. http://127.0.0.1:5000"
    )
    play_parser.add_argument("--tag-repeat", type=int, default=None, help="Plays per tag")
    play_parser.add_argument("--sequence-repeat", type=int, default=None, help="Plays of the whole selection")


def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Run CLI with given arguments.

    Args:
        config_dir: Custom configuration directory or None for default
        args: Parsed command-line arguments (should have cli_command attribute)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    # Check if CLI command was provided
    if not hasattr(args, 'cli_command') or not args.cli_command:
        print("Error: No CLI command specified. Use --help for available commands.", file=sys.stderr)
        return 1

    # Initialize config and database
    config = Config(config_dir=config_dir)
    db_path = config.get_database_file()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = Database(db_path)

    # Execute command
    try:
        if args.cli_command == "new-user":
            return cmd_new_user(db, args)
        elif args.cli_command == "list-habits":
            return cmd_list_habits(db, args)
        elif args.cli_command == "show-habit":
            return cmd_show_habit(db, args)
        elif args.cli_command == "new-habit":
            return cmd_new_habit(db, args)
        elif args.cli_command == "delete-habit":
            return cmd_delete_habit(db, args)
        elif args.cli_command in ("hit", "slip"):
            return cmd_record_event(db, args)
        elif args.cli_command == "reflect":
            return cmd_reflect(db, args)
        elif args.cli_command == "list-notes":
            return cmd_list_notes(db, args)
        elif args.cli_command == "show-note":
            return cmd_show_note(db, args)
        elif args.cli_command == "new-note":
            return cmd_new_note(db, args)
        elif args.cli_command == "delete-note":
            return cmd_delete_note(db, args)
        elif args.cli_command == "play-tags":
            return cmd_play_tags(db, config, args)
        else:
            print(f"Error: Unknown command '{args.cli_command}'", file=sys.stderr)
            return 1
    except ValidationError as e:
        print(f"Error: Invalid {e.field} - {e.message}", file=sys.stderr)
        return 1
    except NotFoundError as e:
        print(f"Error: {e}.", file=sys.stderr)
        return 1
    finally:
        db.close()
