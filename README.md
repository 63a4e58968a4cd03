# remotefs

remotefs keeps a directory in step between one server and any number of
clients over TCP. When a client connects, the server first sends it a full
copy of every file it shares. After that, both sides watch their directory
and send each created, modified or deleted file to the other side; the
server passes its own changes on to every connected client.

The default port is 5343. The server listens on all interfaces.

## Installation

```
pip install .
```

## Usage

Start a server that shares an existing directory:

```
remotefs server /path/to/files
```

Connect a client to it. The client's directory is created if it does not
exist yet:

```
remotefs client 127.0.0.1 /path/to/copy
```

The host must be an IP address; host names are rejected. The unspecified
address (`0.0.0.0` or `::`) is not accepted. The client stops when the
server disconnects.

Progress and errors are logged to standard error. On invalid arguments or
an invalid configuration the command prints a message and exits with
status 1.

### Configuration files

Settings can also be kept in a JSON file. To write a template to
`config.json` in the current directory (replacing any file of that name),
run one of these:

```
remotefs init server
remotefs init client
```

The templates look like this:

```
{"Server":{"port":5343,"location":"/path/to/server"}}
{"Client":{"host":"localhost","port":5343,"location":"/path/to/client"}}
```

Edit `location`, and for a client set `host` to the server's IP address
(the template's `localhost` is not an IP address and is refused). The
`port` field is used both by the server to listen and by the client to
connect. Then start from the file:

```
remotefs config.json
```

## Which files are shared

The server's initial copy covers regular files under the shared directory.
Entries whose names start with a dot are skipped, as are paths matched by
`.ignore` files, and by `.gitignore` files when the directory lies inside a
Git working tree. Changes to those files are not sent either.

A change that a side has just applied on behalf of the other side is not
sent back for half a second, so updates do not bounce between the two.

## What it does not do

- There is no authentication and no encryption: anyone who can reach the
  port receives the shared files and can change them.
- Directories are not synchronised as such: empty directories are not
  copied, and creating or removing a directory sends nothing. A renamed
  file is sent as a change to its new path; the old path is not removed on
  the other side.
- A client's local changes reach the server but are not relayed by the
  server to the other clients.

## Using it from Python

- `remotefs.config`: the `ServerConfig` and `ClientConfig` dataclasses,
  `new_server`, `new_client`, `config_from_file`, `config_to_file`,
  `create_server_config` and `create_client_config`.
- `remotefs.messages`: the message classes `Sync`, `CreateEvent`,
  `ModifyEvent`, `DeleteEvent` and `MoveEvent`; the length-prefixed wire
  format (`compose_data_message`, `parse_msg`); the asyncio stream helpers
  `read_msg` and `write_msg`; and `MessageError`, whose `is_disconnected`
  tells a closed connection from a bad message.
- `remotefs.file_watcher`: `FileWatcher`, which watches a directory
  (usable as a context manager, or closed with `close()`). Its
  `try_get_event()` returns the next change worth passing on, or `None`;
  `make_message()` and `make_msg_data()` turn an `FsEvent` into a message or
  a wire frame; `handle_message()` applies an incoming message to the
  directory; `get_relative_files()` returns every shared file's contents by
  relative path. `fnv1a64` is the content hash it uses to spot real changes.
- `remotefs.server`: `SyncServer(port, root)`, whose `serve()` coroutine
  runs until cancelled (its `ready` event is set once it listens, and
  `port` then holds the bound port), and `run(port, root)`.
- `remotefs.client`: `run(addr, root, port)`, a coroutine that mirrors the
  server into `root` until it disconnects and raises `ConnectionError` when
  the server cannot be reached.
- `remotefs.cli`: `build_config`, `start_from_config` and `main`, the
  function behind the `remotefs` command.

## Development

```
pip install -e ".[test]"
pytest
```