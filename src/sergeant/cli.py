from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Sequence

from .cards import CardParseError, parse_duration
from .config import CONFIG_PATH, STORE_PATH, ConfigError, load_config
from .models import OUTCOMES, Completion
from .store import Store, UnknownCardError, UnknownSetError
from .views import SamplingError, UnknownViewError, default_registry


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sergeant", description="Practise flashcards, hardest topics first")
    parser.add_argument("--store", type=Path, default=STORE_PATH, help="Directory holding the cards")
    parser.add_argument("--config", type=Path, default=CONFIG_PATH, help="Path to the YAML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    commands = parser.add_subparsers(dest="command", required=True)

    query = commands.add_parser("query", help="List the views, paths or sets currently loaded")
    query.add_argument("what", choices=("views", "paths", "sets", "config"))

    next_card = commands.add_parser("next", help="Print the next card a view would show")
    next_card.add_argument("--set", dest="set_name", default="all")
    next_card.add_argument("--view", dest="view_name", default="bayesian")
    next_card.add_argument("--user", default="")
    next_card.add_argument("--seed", type=int, default=None)

    complete = commands.add_parser("complete", help="Add a completion to a card")
    complete.add_argument("outcome", choices=OUTCOMES)
    complete.add_argument("-p", "--path", required=True, help="Path to the card")
    complete.add_argument("-t", "--time", required=True, help="Time taken, e.g. 3m47s")
    complete.add_argument("--user", default="")

    add = commands.add_parser("add", help="Create a new card")
    add.add_argument("path")
    add.add_argument("--tag", dest="tags", action="append", default=[])
    add.add_argument("--notes", default="")
    add.add_argument("--question", type=Path, default=None)
    add.add_argument("--answer", type=Path, default=None)

    serve = commands.add_parser("serve", help="Run the JSON API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _query(store: Store, what: str) -> None:
    if what == "views":
        for name in default_registry().names():
            print(name)
    elif what == "paths":
        for path in store.load().paths():
            print(path)
    elif what == "sets":
        for name in sorted(store.sets):
            print(name)
    else:
        config = asdict(store.config)
        print(json.dumps(config, default=str, indent=2))


def main(argv: Sequence[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        parser.error(str(exc))
    store = Store(args.store, config)

    if args.command == "query":
        _query(store, args.what)
    elif args.command == "next":
        registry = default_registry(
            args.seed,
            difficulty_options=config.difficulty_options,
            bayesian_options=config.bayesian_options,
        )
        try:
            view = registry.get(args.view_name)
            card_set = store.set(args.set_name)
        except (UnknownViewError, UnknownSetError) as exc:
            parser.error(exc.args[0])
        try:
            card = view.next(card_set, args.user)
        except SamplingError as exc:
            parser.error(str(exc))
        if card is None:
            print(f"No card available from the '{args.view_name}' view")
            sys.exit(1)
        print(f"{card.id}\t{card.path}")
    elif args.command == "complete":
        try:
            duration = parse_duration(args.time)
        except ValueError as exc:
            parser.error(f"--time: {exc}")
        completion = Completion(date=datetime.now().replace(second=0, microsecond=0), duration=duration, user=args.user)
        try:
            store.add_completion_by_path(args.path, args.outcome, completion)
        except (UnknownCardError, CardParseError) as exc:
            print(f"Error adding '{args.outcome}' completion to card '{args.path}': {exc.args[0]}")
            sys.exit(1)
        print(f"Success! Added '{args.outcome}' completion in {args.time} to card:\n{args.path}")
    elif args.command == "add":
        try:
            card = store.add_card(
                args.path, tags=args.tags, notes=args.notes, question=args.question, answer=args.answer
            )
        except ValueError as exc:
            parser.error(str(exc))
        print(f"Created card {card.id} at {card.path}")
    elif args.command == "serve":
        import uvicorn

        from .app import create_app

        uvicorn.run(create_app(store), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
