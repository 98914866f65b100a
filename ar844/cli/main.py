from __future__ import annotations

from typing import Optional

from ar844.core.errors import Ar844Error

from ar844.cli.args import parse_args
from ar844.cli.commands import cmd_decode, cmd_probe, cmd_run


def main(argv: Optional[list[str]] = None) -> int:
    try:
        args = parse_args(argv)

        if args.cmd == "run":
            return cmd_run(args)
        if args.cmd == "probe":
            return cmd_probe(args)
        if args.cmd == "decode":
            return cmd_decode(args)

        return 2
    except Ar844Error as e:
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
