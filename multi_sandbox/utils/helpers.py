import argparse
import contextlib
import json
import logging
import os
import pathlib as pl
import signal
import subprocess
import typing as tp

import multi_sandbox.utils.types as ttypes

LOGGER = logging.getLogger(__name__)


@contextlib.contextmanager
def ignore_interrupt() -> tp.Iterator[None]:
    """Ignore the KeyboardInterrupt signal."""
    orig_handler = None
    try:
        orig_handler = signal.signal(signal.SIGINT, signal.SIG_IGN)
    except ValueError as exc:
        if "signal only works in main thread" not in str(exc):
            raise

    if orig_handler is None:
        yield
        return

    try:
        yield
    finally:
        signal.signal(signal.SIGINT, orig_handler)


def run_command(
    command: str | list,
    *,
    workdir: ttypes.FileType = "",
    ignore_fail: bool = False,
    shell: bool = False,
) -> bytes:
    """Run command."""
    cmd: str | list
    if isinstance(command, str):
        cmd = command if shell else command.split()
        cmd_str = command
    else:
        cmd = [str(c) for c in command]
        cmd_str = " ".join(cmd)

    LOGGER.debug("Running `%s`", cmd_str)

    with subprocess.Popen(
        cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, shell=shell, cwd=workdir or None
    ) as p:
        stdout, stderr = p.communicate()
        retcode = p.returncode

    if not ignore_fail and retcode != 0:
        err_dec = stderr.decode()
        err_dec = err_dec or stdout.decode()
        msg = f"An error occurred while running `{cmd_str}`: {err_dec}"
        raise RuntimeError(msg)

    return stdout


def is_executable(path: ttypes.FileType) -> bool:
    """Check that the path is an existing executable file."""
    fpath = pl.Path(path)
    return fpath.is_file() and os.access(fpath, os.X_OK)


def write_json(*, out_file: ttypes.FileType, content: dict) -> ttypes.FileType:
    """Write dictionary content to JSON file."""
    with open(pl.Path(out_file).expanduser(), "w", encoding="utf-8") as out_fp:
        out_fp.write(json.dumps(content, indent=4))
    return out_file


def read_json(in_file: ttypes.FileType) -> dict:
    """Read JSON file, return empty dict if the file doesn't exist."""
    fpath = pl.Path(in_file).expanduser()
    if not fpath.exists():
        return {}
    with open(fpath, encoding="utf-8") as in_fp:
        return json.load(in_fp)


def replace_literal_home(path: ttypes.FileType) -> str:
    """Replace the user's home directory with `$HOME` for display purposes."""
    home = str(pl.Path.home())
    path_str = str(path)
    if home != "/" and path_str.startswith(home):
        return f"$HOME{path_str[len(home) :]}"
    return path_str


def check_dir_arg(dir_path: str) -> pl.Path | None:
    """Check that the dir passed as argparse parameter is a valid existing dir."""
    if not dir_path:
        return None
    abs_path = pl.Path(dir_path).expanduser().resolve()
    if not (abs_path.exists() and abs_path.is_dir()):
        msg = f"check_dir_arg: directory '{dir_path}' doesn't exist"
        raise argparse.ArgumentTypeError(msg)
    return abs_path


def check_port_arg(port: str) -> int:
    """Check that the port passed as argparse parameter is a valid TCP port number."""
    try:
        port_num = int(port)
    except ValueError as exc:
        msg = f"check_port_arg: '{port}' is not a number"
        raise argparse.ArgumentTypeError(msg) from exc
    if not 1024 <= port_num <= 65535:
        msg = f"check_port_arg: port '{port}' is out of range 1024-65535"
        raise argparse.ArgumentTypeError(msg)
    return port_num
