"""Command-line interface for StegoChat."""

from __future__ import annotations

import argparse
import logging
import sys
import time

from .bytes2text import TOP_K, GenerationConfig
from .messages import Message, Speaker, dump_conversation, load_conversation
from .model import PRIMARY_MODEL
from .pipeline import Pipeline, get_pipeline
from .utils import StegoError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stegochat",
        description="Hide encrypted chat messages inside ordinary-looking chat lines.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="print diagnostics to stderr"
    )
    parser.add_argument("--model", default=PRIMARY_MODEL, help="HuggingFace model name")
    parser.add_argument(
        "--device", default="auto", help="torch device (auto, cpu, cuda, …)"
    )
    parser.add_argument("--temperature", type=float, default=0.9, help="softmax temperature")
    parser.add_argument("--top-p", type=float, default=0.9, help="nucleus filtering mass")
    parser.add_argument("--top-k", type=int, default=TOP_K, help="top-k filtering width")

    sub = parser.add_subparsers(dest="command")

    # -- encrypt -------------------------------------------------------
    enc = sub.add_parser("encrypt", help="append a disguised message to a conversation")
    enc.add_argument("text", help="message to hide")
    enc.add_argument("-p", "--password", required=True, help="shared password")
    enc.add_argument(
        "-s", "--speaker", choices=[s.value for s in Speaker], default="A", help="sender"
    )
    enc.add_argument(
        "-c", "--conversation", default=None, help="conversation JSON file to extend"
    )
    enc.add_argument("-o", "--output", default=None, help="write conversation JSON to file")

    # -- decrypt -------------------------------------------------------
    dec = sub.add_parser("decrypt", help="reveal the hidden messages of a conversation")
    dec.add_argument("conversation", help="conversation JSON file ('-' for stdin)")
    dec.add_argument("-p", "--password", required=True, help="shared password")
    dec.add_argument(
        "-o", "--output", default=None, help="write resolved conversation JSON to file"
    )

    return parser


def _log(msg: str) -> None:
    print(msg, file=sys.stderr)


def _read_conversation(path: str | None) -> list[Message]:
    if path is None:
        return []
    if path == "-":
        return load_conversation(sys.stdin.read())
    with open(path, encoding="utf-8") as fh:
        return load_conversation(fh.read())


def _write_conversation(messages: list[Message], path: str | None) -> None:
    text = dump_conversation(messages)
    if path:
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text + "\n")
    else:
        sys.stdout.write(text + "\n")


def _cmd_encrypt(pipeline: Pipeline, args: argparse.Namespace, verbose: bool) -> None:
    history = _read_conversation(args.conversation)
    t0 = time.perf_counter()
    resolved = pipeline.decrypt_messages(args.password, history)
    result = pipeline.encrypt_message(
        args.password, resolved, Message(Speaker(args.speaker), args.text)
    )
    elapsed = time.perf_counter() - t0

    if verbose:
        _log(f"Cover text:      {result.encrypted.content}")
        _log(f"Encryption time: {elapsed:.2f}s")

    _write_conversation([*history, result.encrypted], args.output)


def _cmd_decrypt(pipeline: Pipeline, args: argparse.Namespace, verbose: bool) -> None:
    messages = _read_conversation(args.conversation)
    t0 = time.perf_counter()
    resolved = pipeline.decrypt_messages(args.password, messages)
    elapsed = time.perf_counter() - t0

    if verbose:
        hidden = sum(m.decrypted_content is not None for m in resolved)
        _log(f"Decrypted {hidden}/{len(resolved)} messages in {elapsed:.2f}s")

    if args.output:
        _write_conversation(resolved, args.output)
        return
    for message in resolved:
        if message.decrypted_content is not None:
            print(f"{message.speaker.tag} {message.decrypted_content}  [hidden]")
        else:
            print(f"{message.speaker.tag} {message.content}")


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    verbose = args.verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if verbose:
        _log(f"Loading model: {args.model}")

    t_model = time.perf_counter()
    try:
        config = GenerationConfig(
            temperature=args.temperature, top_p=args.top_p, top_k=args.top_k
        )
        pipeline = get_pipeline(model_name=args.model, device=args.device, config=config)
    except (StegoError, ValueError) as exc:
        print(f"stegochat: {exc}", file=sys.stderr)
        sys.exit(1)
    t_model = time.perf_counter() - t_model

    if verbose:
        _log(f"Model loaded in {t_model:.2f}s")

    try:
        if args.command == "encrypt":
            _cmd_encrypt(pipeline, args, verbose)
        else:
            _cmd_decrypt(pipeline, args, verbose)
    except (StegoError, ValueError, OSError) as exc:
        print(f"stegochat: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
