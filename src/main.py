"""
Main entry point for the tile studio.
"""

import sys
import os

# Add the directory containing this file (src) to the Python path
# This allows imports like 'from api.app import ...' to work
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from config import CONFIG
from core.errors import StudioError
from core.log import setup_logging


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(description="Tile studio asset server and tools")
    parser.add_argument("--games-dir", help="Folder holding one sub-folder per game")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the studio API server")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)

    sub.add_parser("games", help="List games")

    show = sub.add_parser("show", help="Print a background in the terminal")
    show.add_argument("game")
    show.add_argument("background")

    render = sub.add_parser("render", help="Write a composited background PNG")
    render.add_argument("game")
    render.add_argument("background")
    render.add_argument("-o", "--output", default="background.png")
    return parser


def main(argv=None):
    """Entry point for the studio."""
    args = build_parser().parse_args(argv)
    config = CONFIG.model_copy()
    if args.games_dir:
        config.games_dir = args.games_dir
    setup_logging(config.log_level)

    from data.store import FileProjectStore
    from data.repository import ProjectRepository, list_projects

    store = FileProjectStore(config.games_dir)

    try:
        if args.command == "serve":
            from api.app import create_app

            if args.host:
                config.host = args.host
            if args.port:
                config.port = args.port
            app = create_app(config, store)
            app.run(host=config.host, port=config.port, debug=not config.production)
        elif args.command == "games":
            for name in list_projects(store):
                print(name)
        elif args.command == "show":
            from ui.renderer import BackgroundRenderer

            repo = ProjectRepository(store, args.game)
            doc = repo.document()
            bg = repo.background(args.background, doc)
            BackgroundRenderer().render(bg, repo.tileset(bg.tileset_id, doc))
        elif args.command == "render":
            image = ProjectRepository(store, args.game).render_background(args.background)
            image.save(args.output)
            print(f"Wrote {image.width}x{image.height} composite to {args.output}")
    except StudioError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nStudio interrupted by user.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
