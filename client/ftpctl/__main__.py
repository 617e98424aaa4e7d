"""CLI entry point for the ftpctl client.

Usage::

    ftpctl --host ftp.example.com ls /pub
    ftpctl --user alice get report.pdf
    ftpctl put notes.txt /incoming/notes.txt
"""

import argparse
import configparser
import logging
import os
import sys

from . import FtpConnection, FtpError, ProtocolError, EntryKind

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 21
DEFAULT_USER = "anonymous"
DEFAULT_TIMEOUT = 30.0

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_KIND_LABELS = {
    EntryKind.FILE: "FILE",
    EntryKind.DIRECTORY: "DIR",
    EntryKind.LINK: "LINK",
}


def cmd_ls(conn, args):
    """Handle the 'ls' subcommand."""
    if args.long:
        for line in conn.list_dir(args.path):
            print(line)
        return
    for entry in conn.entries(args.path):
        print("{}\t{}".format(_KIND_LABELS[entry.kind], entry.name))


def cmd_names(conn, args):
    """Handle the 'names' subcommand."""
    for name in conn.nlst(args.path):
        print(name)


def cmd_pwd(conn, args):
    """Handle the 'pwd' subcommand."""
    print(conn.pwd())


def cmd_system(conn, args):
    """Handle the 'system' subcommand."""
    print(conn.system())


def cmd_get(conn, args):
    """Handle the 'get' subcommand."""
    conn.set_binary()
    data = conn.retrieve(args.remote)
    local = args.local
    if local is None:
        local = args.remote.rstrip("/").rsplit("/", 1)[-1] or args.remote
    with open(local, "wb") as f:
        f.write(data)
    print("Downloaded {} bytes to {}".format(len(data), local))


def cmd_put(conn, args):
    """Handle the 'put' subcommand."""
    with open(args.local, "rb") as f:
        data = f.read()
    remote = args.remote
    if remote is None:
        remote = os.path.basename(args.local)
    conn.set_binary()
    conn.store(remote, data)
    print("Uploaded {} bytes to {}".format(len(data), remote))


def cmd_rm(conn, args):
    """Handle the 'rm' subcommand."""
    conn.delete(args.path)
    print("Deleted")


def cmd_mv(conn, args):
    """Handle the 'mv' subcommand."""
    conn.rename(args.old, args.new)
    print("Renamed")


def cmd_mkdir(conn, args):
    """Handle the 'mkdir' subcommand."""
    print("Created {}".format(conn.mkdir(args.path)))


def cmd_rmdir(conn, args):
    """Handle the 'rmdir' subcommand."""
    conn.rmdir(args.path)
    print("Removed")


def _default_config_path(host=None, port=None):
    """Return the path to ftpctl.conf in the client directory.

    If the file does not exist but ftpctl.conf.example does, copy it to
    create a starter config.  When *host* or *port* are provided (from
    CLI flags), those values are written into the generated config so
    the user's first-run settings are captured.

    The client directory is the parent of the package, so this only
    finds the example in a source checkout or an editable install.  A
    regular install ships no example; nothing is seeded and the
    missing file is ignored unless --config names it.
    """
    client_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    conf = os.path.join(client_dir, "ftpctl.conf")
    if not os.path.exists(conf):
        example = os.path.join(client_dir, "ftpctl.conf.example")
        if os.path.exists(example):
            try:
                with open(example, "r") as src, open(conf, "w") as dst:
                    content = src.read()
                    if host is not None:
                        content = content.replace(
                            "host = {}".format(DEFAULT_HOST),
                            "host = {}".format(host),
                        )
                    if port is not None:
                        content = content.replace(
                            "port = {}".format(DEFAULT_PORT),
                            "port = {}".format(port),
                        )
                    dst.write(content)
            except OSError:
                pass
    return conf


def _fail(message):
    print("Error: {}".format(message), file=sys.stderr)
    sys.exit(1)


def _load_config(path, explicit):
    """Load settings from a config file.

    Args:
        path: File path to read.
        explicit: True if the user passed --config (errors are fatal).

    Returns a dict with keys 'host', 'port', 'timeout', 'user' and
    'password' (any may be None).
    """
    if not os.path.exists(path):
        if explicit:
            _fail("config file not found: {}".format(path))
        return {}

    config = configparser.ConfigParser()
    try:
        config.read(path)
    except configparser.Error as e:
        if explicit:
            _fail("failed to parse config file: {}".format(e))
        print("Warning: failed to parse config file: {}".format(e),
              file=sys.stderr)
        return {}

    result = {}

    for section, key in (("connection", "host"), ("login", "user"),
                         ("login", "password")):
        value = config.get(section, key, fallback=None)
        if value is not None:
            value = value.strip() or None
        result[key] = value

    # Port
    try:
        port = config.getint("connection", "port", fallback=None)
    except ValueError as e:
        if explicit:
            _fail("invalid port in config file: {}".format(e))
        print("Warning: invalid port in config file: {}".format(e),
              file=sys.stderr)
        port = None
    result["port"] = port

    # Timeout
    try:
        timeout = config.getfloat("connection", "timeout", fallback=None)
    except ValueError as e:
        if explicit:
            _fail("invalid timeout in config file: {}".format(e))
        print("Warning: invalid timeout in config file: {}".format(e),
              file=sys.stderr)
        timeout = None
    result["timeout"] = timeout

    return result


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def build_parser():
    """Build the argument parser for the ftpctl command line."""
    parser = argparse.ArgumentParser(
        prog="ftpctl",
        description="FTP client",
    )
    parser.add_argument(
        "--host", default=None,
        help="Server hostname or IP (default: FTPCTL_HOST env or {})".format(
            DEFAULT_HOST),
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Server port (default: FTPCTL_PORT env or {})".format(
            DEFAULT_PORT),
    )
    parser.add_argument(
        "--user", default=None,
        help="Login name (default: FTPCTL_USER env or {})".format(
            DEFAULT_USER),
    )
    parser.add_argument(
        "--password", default=None,
        help="Login password (default: FTPCTL_PASSWORD env or empty)",
    )
    parser.add_argument(
        "--timeout", type=float, default=None, metavar="SECS",
        help="Socket timeout in seconds (default: {:g})".format(
            DEFAULT_TIMEOUT),
    )
    parser.add_argument(
        "--config", default=None, metavar="PATH",
        help="Path to config file (default: client/ftpctl.conf)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Log protocol traffic to stderr",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    p_ls = subparsers.add_parser("ls", help="List directory contents")
    p_ls.add_argument("path", nargs="?", default=None,
                      help="Remote path (default: working directory)")
    p_ls.add_argument("-l", "--long", action="store_true",
                      help="Print the server's raw listing lines")

    p_names = subparsers.add_parser("names", help="List names only (NLST)")
    p_names.add_argument("path", nargs="?", default=None,
                         help="Remote path (default: working directory)")

    subparsers.add_parser("pwd", help="Print the remote working directory")
    subparsers.add_parser("system", help="Print the server system type")

    p_get = subparsers.add_parser("get", help="Download a file")
    p_get.add_argument("remote", help="Remote file path")
    p_get.add_argument("local", nargs="?", default=None,
                       help="Local file path (default: same name in "
                            "current directory)")

    p_put = subparsers.add_parser("put", help="Upload a file")
    p_put.add_argument("local", help="Local file path")
    p_put.add_argument("remote", nargs="?", default=None,
                       help="Remote file path (default: same name in "
                            "remote working directory)")

    p_rm = subparsers.add_parser("rm", help="Delete a file")
    p_rm.add_argument("path", help="Remote path")

    p_mv = subparsers.add_parser("mv", help="Rename a file or directory")
    p_mv.add_argument("old", help="Current remote path")
    p_mv.add_argument("new", help="New remote path")

    p_mkdir = subparsers.add_parser("mkdir", help="Create a directory")
    p_mkdir.add_argument("path", help="Remote path")

    p_rmdir = subparsers.add_parser("rmdir", help="Remove a directory")
    p_rmdir.add_argument("path", help="Remote path")

    return parser


def main(argv=None) -> None:
    """Parse arguments and dispatch to the appropriate subcommand."""
    env_host = os.environ.get("FTPCTL_HOST") or None
    env_user = os.environ.get("FTPCTL_USER") or None
    env_password = os.environ.get("FTPCTL_PASSWORD") or None
    env_port_str = os.environ.get("FTPCTL_PORT")
    env_port = None
    if env_port_str:
        try:
            env_port = int(env_port_str)
        except ValueError:
            _fail("FTPCTL_PORT must be an integer, got: {!r}".format(
                env_port_str))

    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
    )

    if args.config is not None:
        config = _load_config(args.config, explicit=True)
    else:
        config = _load_config(
            _default_config_path(args.host, args.port), explicit=False)

    host = _first(args.host, env_host, config.get("host"), DEFAULT_HOST)
    port = _first(args.port, env_port, config.get("port"), DEFAULT_PORT)
    user = _first(args.user, env_user, config.get("user"), DEFAULT_USER)
    password = _first(args.password, env_password, config.get("password"))
    timeout = _first(args.timeout, config.get("timeout"), DEFAULT_TIMEOUT)

    dispatch = {
        "get": cmd_get,
        "ls": cmd_ls,
        "mkdir": cmd_mkdir,
        "mv": cmd_mv,
        "names": cmd_names,
        "put": cmd_put,
        "pwd": cmd_pwd,
        "rm": cmd_rm,
        "rmdir": cmd_rmdir,
        "system": cmd_system,
    }

    try:
        with FtpConnection(host, port, timeout=timeout) as conn:
            conn.login(user, password)
            dispatch[args.command](conn, args)
    except FtpError as e:
        _fail(e)
    except ProtocolError as e:
        _fail(e)
    except OSError as e:
        _fail(e)


if __name__ == "__main__":
    main()
