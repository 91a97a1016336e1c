import argparse

def get_base_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Podcast sync and listening progress")
    parser.add_argument("-e", "--env-file", help="Path to a custom .env file", default=None)
    return parser

def add_log_level_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-l", "--log-level", help="Set log level (DEBUG, INFO, WARNING, ERROR); defaults to LOG_LEVEL", default=None
    )

def add_channel_id_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("channel_id", type=int, help="Channel ID")

def add_enclosure_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("enclosure_url", help="Episode enclosure URL")
