import argparse
import logging
import sys

from gemlink.client import (
    Client, DocumentLoaded, InputRequired, LoadError, MediaLoaded)
from gemlink.config import load_config
from gemlink.fs import (
    ensure_gemlink_files_exist, get_cert_stash_path, get_config_path)
from gemlink.gemtext import Heading, Link, ListItem, Preformatted, Quote
from gemlink.navigation import sanitize_url
from gemlink.tofu import CertStash, load_cert_stash, save_cert_stash


def format_line(line) -> str:
    """Return a plain text version of a parsed line."""
    if isinstance(line, Link):
        return f"=> {line.url} {line.name}" if line.name else f"=> {line.url}"
    if isinstance(line, Heading):
        return "#" * line.level + " " + line.text
    if isinstance(line, ListItem):
        return "* " + line.text
    if isinstance(line, Quote):
        return "> " + line.text
    if isinstance(line, Preformatted):
        return line.text.rstrip("\n")
    return line.text


def main():
    argparser = argparse.ArgumentParser(prog="gemlink")
    argparser.add_argument("url")
    argparser.add_argument("-i", "--input", help="input to submit")
    argparser.add_argument("-v", "--verbose", action="store_true")
    args = argparser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    files_error = ensure_gemlink_files_exist()
    if files_error:
        print("gemlink could not create local files:", files_error)
        return 1

    config = load_config(get_config_path())
    cert_stash_path = get_cert_stash_path()
    cert_stash = load_cert_stash(cert_stash_path) or CertStash()
    client = Client.from_config(config, cert_stash)
    url = sanitize_url(args.url)
    try:
        if args.input is not None:
            outcome = client.submit_input(url, args.input)
        else:
            outcome = client.load(url)
    finally:
        save_cert_stash(cert_stash, cert_stash_path)

    if isinstance(outcome, DocumentLoaded):
        for line in outcome.document.lines:
            print(format_line(line))
    elif isinstance(outcome, MediaLoaded):
        sys.stdout.buffer.write(outcome.content)
    elif isinstance(outcome, InputRequired):
        print(f"{outcome.prompt} (use --input)", file=sys.stderr)
        return 10
    elif isinstance(outcome, LoadError):
        print(f"{outcome.kind}: {outcome.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
