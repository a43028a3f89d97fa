# layerconf

Layered configuration for Python applications. Values come from several
sources — in-memory settings, environment variables and YAML files — and a
`Manager` merges them by priority: for each key, the source with the lower
priority number wins.

## Installation

```
pip install layerconf
```

## Sources

Every source derives from `layerconf.source.ConfigSource` and has a `name`
and a `priority` (which an instance may override).

| Source                         | `name`              | Default priority |
|--------------------------------|---------------------|------------------|
| `layerconf.mem.MemorySource`   | `MemorySource`      | 1                |
| `layerconf.env.EnvSource`      | `EnvironmentSource` | 3                |
| `layerconf.file.FileSource`    | `FileSource`        | 4                |

- `MemorySource` holds values set at run time with `set(key, value)` and
  `delete(key)`, and reports each change as an `Event` to its handler. Writes
  wait until `watch(handler)` has been called; the `Manager` does this when the
  source is added.
- `EnvSource` takes a snapshot of the process environment when it is created.
  Each variable is stored under its own name and also with underscores
  replaced by dots, so `A_B_C` can be read as `A.B.C`. Environment changes
  after creation are not observed; writes are ignored.
- `FileSource` loads YAML files, or every file in a directory, with
  `add_file(path, priority=0, handler=None)`. Nested mappings are flattened
  into dotted keys (`server.port`). Each file has its own priority: a lower
  number wins when two files provide the same key, and on equal priority the
  value already held is kept. Once `watch(handler)` has been called, changed
  files are reloaded and create, update and delete events are reported.

Missing keys raise `layerconf.source.KeyNotExistError`.

### File handlers

A file handler turns a path and the file's bytes into key/values
(`layerconf.file_handler`):

- `convert_to_java_props(file_path, content)` — the default: flattens YAML
  into dotted keys, keeps lists (flattening mappings inside them) and expands
  environment references in strings.
- `use_file_name_as_key_content_as_value(file_path, content)` — one key, the
  file's base name, holding the raw content.

## Using the manager

```python
from layerconf.manager import Manager
from layerconf.env import EnvSource
from layerconf.file import FileSource
from layerconf.mem import MemorySource

manager = Manager()
manager.add_source(EnvSource())
manager.add_source(MemorySource())

files = FileSource()
files.add_file("conf/app.yaml", 0, None)
manager.add_source(files)

manager.set("feature.enabled", True)     # written to every source that accepts writes

print(manager.get_config("server.port"))
print(manager.is_key_exist("server.port"))
print(manager.configs())
print(manager.configs_with_source_names())  # {key: {"value": ..., "source": ...}}
```

`add_source` rejects a source without a name or one whose name is already
held, loads its configuration and starts watching it. `refresh(source_name)`
reloads one source, and `cleanup()` cleans up every source.

`manager.marshal(stream)` writes the configuration of every non-empty source
as YAML to a text stream, grouped by source name.

### Filling objects

`manager.unmarshal(obj)` fills a dataclass instance from the merged values
and returns it. Field names are read as snake_case keys, nested dataclasses
as dotted levels; `field(metadata={"yaml": "name"})` sets the key,
`{"yaml": "-"}` skips the field and `{"yaml": ",inline"}` marks a mapping
collected from sibling keys. Given a dict, it replaces its contents with
every key and value. The same logic is available as
`layerconf.unmarshal.unmarshal(store, obj)`, and
`layerconf.unmarshal.convert_value(value, target_type)` converts a single
value with the same lenient rules. Failures raise `UnmarshalError`.

## Listening for changes

Listeners have an `on_event(event)` method and receive events whose key
matches a regular expression; module listeners have `on_module_event(events)`
and receive batches of events whose keys start with a prefix.

```python
manager.register_listener(my_listener, r"server\..*")
manager.register_module_listener(my_module_listener, "server")

manager.unregister_listener(my_listener, r"server\..*")
manager.unregister_module_listener(my_module_listener, "server")
```

An event from a source with a lower precedence than the one currently
providing the key is ignored, and a delete falls back to the next best source
that still holds the key.

## Values from the environment

String values in YAML files may reference environment variables with a
default:

```yaml
addr: ${IP||127.0.0.1}:${PORT||8080}
env: ${DEPLOY_ENV^^||local}   # upper-cased; use ,, to lower-case
```

An unset or empty variable yields the default. `layerconf.expand.expand_value_env`
performs this substitution directly.

## Helpers for remote stores

- `layerconf.remote` holds `Options` for a remote client, the label names
  (`LABEL_APP`, `LABEL_SERVICE`, `LABEL_VERSION`, `LABEL_ENVIRONMENT`),
  `RefreshMode` and the errors `InvalidEndpointError`, `LabelsNilError`,
  `AppEmptyError` and `ServiceTooLongError`.
- `layerconf.kie_labels.generate_labels(dimension, options_labels)` picks the
  labels of a `DimensionName` (`APP` or `SERVICE`); `DIMENSION_PRECEDENCE`
  orders them from lowest to highest precedence.
- `layerconf.dimension.generate_dimension(service_name, version, app_name)`
  builds `service@app#version` strings, with the `Instance` and `Members`
  records.
- `layerconf.workqueue.concurrent(workers, pieces, do_work_piece)` runs
  pieces of work on a bounded thread pool and raises `ConcurrentError` with
  every failure.

## What the package does not do

There is no network client for a remote key/value store or configuration
center: the package provides the options, labels and dimension strings such a
client needs, but it fetches nothing over the network and has no remote
`ConfigSource`. There is no command-line tool.

## Running the tests

```
pip install -e ".[test]"
pytest
```