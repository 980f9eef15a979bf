"""CLI interface with subcommand routing."""

import argparse
import asyncio
import logging
import os
import sys

from podcast_producer.config import (
    STORE_BACKENDS,
    TTS_BACKENDS,
    Settings,
    build_orchestrator,
    build_voice_profile,
)
from podcast_producer.constants import VERSION
from podcast_producer.errors import ConfigurationError, PodcastProducerError
from podcast_producer.parser import parse_script
from podcast_producer.pipeline import Orchestrator
from podcast_producer.storage import LocalMetadataStore


def _read_text(path: str, label: str) -> str:
    if not os.path.exists(path):
        print(f"Error: {label} not found: {path}", file=sys.stderr)
        raise SystemExit(1)
    with open(path, encoding="utf-8") as f:
        return f.read()


def _settings_from_args(args) -> Settings:
    """Environment settings, overridden by any flags given on the command line."""
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)
    if getattr(args, "backend", None):
        settings.tts_backend = args.backend
    if getattr(args, "store", None):
        settings.store = args.store
    if getattr(args, "output_dir", None):
        settings.output_dir = args.output_dir
    if getattr(args, "voices_file", None):
        settings.voices_file = args.voices_file
    return settings


async def _generate(
    orchestrator: Orchestrator,
    settings: Settings,
    content_id: str,
    title: str,
    script: str,
    description: str | None,
) -> None:
    # Transcript and description are stored before the job, as the web
    # handler does; the job itself only touches audioLink.
    links = await orchestrator.gateway.store_text_artifacts(title, script, description)
    if settings.store == "local":
        LocalMetadataStore(settings.output_dir).create_record(
            content_id,
            title,
            transcript_link=links["transcriptLink"],
            description_link=links["descriptionLink"],
        )

    job_id = orchestrator.launch(content_id, title, script)
    print(f"Started job {job_id} for {content_id}")
    await orchestrator.drain()


def cmd_generate(args):
    """Generate podcast audio for a script and link it to a content record."""
    script = _read_text(args.file, "Script file")
    if not script.strip():
        print(f"Error: Script file is empty: {args.file}", file=sys.stderr)
        raise SystemExit(1)
    description = _read_text(args.description, "Description file") if args.description else None

    lines = parse_script(script)
    if not lines:
        print(f"Warning: no 'Speaker: text' lines found in {args.file}", file=sys.stderr)

    settings = _settings_from_args(args)
    try:
        orchestrator = build_orchestrator(settings)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)

    print(f"Generating audio for '{args.title}' ({len(lines)} lines, backend: {settings.tts_backend})")
    try:
        asyncio.run(_generate(orchestrator, settings, args.content_id, args.title, script, description))
    except PodcastProducerError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)

    if settings.store == "local":
        record = LocalMetadataStore(settings.output_dir).load_record(args.content_id)
        if record and record.audioLink:
            print(f"Audio: {record.audioLink}")
        else:
            print("No audio linked; see the log for details.")


def cmd_status(args):
    """Show a content record from the local store."""
    settings = _settings_from_args(args)
    record = LocalMetadataStore(settings.output_dir).load_record(args.content_id)
    if record is None:
        print(f"Error: No record for '{args.content_id}' in {settings.output_dir}", file=sys.stderr)
        raise SystemExit(1)

    print(f"Record:      {record.id}")
    print(f"Title:       {record.title}")
    print(f"Audio:       {record.audioLink or '(none)'}")
    print(f"Transcript:  {record.transcriptLink or '(none)'}")
    print(f"Description: {record.descriptionLink or '(none)'}")
    print(f"Updated:     {record.updatedAt or 'unknown'}")


def cmd_voices(args):
    """List configured speaker voices."""
    settings = _settings_from_args(args)
    try:
        voices = build_voice_profile(settings)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)

    filter_str = args.filter.lower() if args.filter else None
    entries = [
        (speaker, voice) for speaker, voice in voices.items()
        if not filter_str or filter_str in speaker.lower() or filter_str in voice.lower()
    ]
    if not entries:
        print("No matching voices found.")
        return
    print(f"Voices ({settings.tts_backend}):")
    for speaker, voice in entries:
        print(f"  {speaker:<15} → {voice}")


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="podcast-producer",
        description="Podcast Producer: turn two-host dialogue scripts into stored podcast audio",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--backend", choices=TTS_BACKENDS, help="TTS backend (default: $PODCAST_TTS_BACKEND)")
    common.add_argument("--store", choices=STORE_BACKENDS, help="Storage backend (default: $PODCAST_STORE)")
    common.add_argument("--output-dir", help="Local store directory (default: $PODCAST_OUTPUT_DIR)")
    common.add_argument("--voices-file", help="JSON file mapping speakers to voice ids")

    # generate
    gen_parser = subparsers.add_parser("generate", parents=[common], help="Generate audio for a script")
    gen_parser.add_argument("file", help="Path to the dialogue script")
    gen_parser.add_argument("--content-id", required=True, help="Content record id to link the audio to")
    gen_parser.add_argument("--title", required=True, help="Title used in storage keys")
    gen_parser.add_argument("--description", help="Path to a description text file")
    gen_parser.set_defaults(func=cmd_generate)

    # status
    status_parser = subparsers.add_parser("status", parents=[common], help="Show a local content record")
    status_parser.add_argument("content_id", help="Content record id")
    status_parser.set_defaults(func=cmd_status)

    # voices
    voices_parser = subparsers.add_parser("voices", parents=[common], help="List speaker voices")
    voices_parser.add_argument("--filter", help="Filter by speaker or voice id substring")
    voices_parser.set_defaults(func=cmd_voices)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)
