# gpushare

Tools for describing how the GPUs of a Kubernetes node are shared. It covers:

- reading and checking the versioned (`v1`) configuration file, in YAML or
  JSON, including time-slicing and MPS replication settings
  (`gpushare.config`, `gpushare.flags`, `gpushare.sharing`,
  `gpushare.replicas`, `gpushare.resources`);
- helpers for an MPS control daemon: finding the driver library below a
  driver root (`gpushare.driver_root`) and setting up the `/mps/shm` tmpfs
  mount (`gpushare.shm_mount`);
- a config manager that watches a label on its own node and switches a config
  symlink to the file that label names, then signals the process that uses it
  (`gpushare.configmanager`, `gpushare.nodewatch`,
  `gpushare.config_manager_cli`).

## Installation

```
pip install gpushare
```

Python 3.10 or later is required. The config manager and the mount helper
run on Linux.

## The config manager

```
gpushare-config-manager \
    --node-name my-node \
    --config-file-srcdir /available-configs \
    --config-file-dst /config/config.yaml
```

The command watches the node named by `--node-name` through the Kubernetes
API. Whenever the value of the label given by `--node-label` (default
`nvidia.com/device-plugin.config`) changes, it picks the file of that name
from `--config-file-srcdir` and points the symlink `--config-file-dst` at it.
An empty selection points the symlink at `/dev/null`. If the symlink changed,
the first process whose command line starts with the name given by
`--process-to-signal` (default `nvidia-device-plugin`) receives the signal
given by `--signal` (default `SIGHUP`), unless `--send-signal false` is given.
A label naming a file that does not exist is an error and ends the command.

When the label is not set, the config named by `--default-config` is used. If
there is none, the strategies in `--fallback-strategies` (repeatable, or
comma separated) are tried in order:

| strategy | meaning                                                  |
|----------|----------------------------------------------------------|
| `named`  | use a config file called `default` if there is one       |
| `single` | use the only config file, if exactly one is available    |
| `empty`  | use an empty configuration                               |

Files whose names start with `..` (the bookkeeping files of mounted
ConfigMaps) and directories are ignored.

With `--oneshot` the command applies the current label once and exits.
`--node-name`, `--node-label`, `--config-file-srcdir` and `--config-file-dst`
must not be empty.

Options given on the command line win; otherwise each is read from the
environment:

| option                  | variable              |
|-------------------------|-----------------------|
| `--oneshot`             | `ONESHOT`             |
| `--kubeconfig`          | `KUBECONFIG`          |
| `--node-name`           | `NODE_NAME`           |
| `--node-label`          | `NODE_LABEL`          |
| `--config-file-srcdir`  | `CONFIG_FILE_SRCDIR`  |
| `--config-file-dst`     | `CONFIG_FILE_DST`     |
| `--default-config`      | `DEFAULT_CONFIG`      |
| `--fallback-strategies` | `FALLBACK_STRATEGIES` |
| `--send-signal`         | `SEND_SIGNAL`         |
| `--signal`              | `SIGNAL`              |
| `--process-to-signal`   | `PROCESS_TO_SIGNAL`   |

Boolean values are written `true`/`false` (also `1`/`0`, `t`/`f`). When no
kubeconfig is given, the in-cluster service account is used.

The same steps are available from Python: `update_config(value, flags)` in
`gpushare.configmanager` applies one label value to a `ManagerFlags`, and
`SyncableConfig` hands label changes from a `NodeLabelWatcher` to a reader.

## Reading a configuration file

```python
from gpushare.config import parse_config

config = parse_config("/config/config.yaml")
print(config.sharing.sharing_strategy())
```

A file without a `version` is taken to be `v1`; any other version is an
error. Replicated resources are checked as they are read: every resource
needs a valid name and at least two replicas, and `devices` may be `"all"`, a
positive count, or a list of GPU indices, MIG indices (`"0:1"`) and GPU or MIG
UUIDs.

```python
from gpushare.replicas import ReplicatedDeviceRef, replicated_resources_from_json

ReplicatedDeviceRef("0:0").is_mig_index()          # True
replicated_resources_from_json('{"resources": [{"name": "gpu", "replicas": 4}]}')
```

`new_config(context, flag_names)` combines a config file with command line
values held in a `CliContext`: explicitly set flags win over the file, which
wins over flag defaults. `disable_resource_naming_in_config(logger, config)`
drops custom resource names and device selections, logging a warning for each
kind that was present.

Device list strategies and durations have helpers of their own:

```python
from gpushare.duration import parse_duration
from gpushare.strategy import new_device_list_strategies

new_device_list_strategies(["envvar", "cdi-annotations"]).is_cdi_enabled()  # True
str(parse_duration("90s"))                                                  # "1m30s"
```

Errors in a configuration are raised as `gpushare.consts.ConfigError`.

## MPS helpers

```python
from gpushare.driver_root import get_driver_library_path
from gpushare.shm_mount import mount_shm

get_driver_library_path("/driver-root")   # resolved path of libnvidia-ml.so.1
mount_shm()                               # fresh tmpfs at /mps/shm (needs root)
```

## What this package does not do

It has no device plugin server, no GPU feature labelling, and no command that
starts, stops or supervises MPS daemons or generates CDI specifications. The
configuration types and MPS helpers are libraries for such programs; the only
command is `gpushare-config-manager`.

## Running the tests

```
pip install "gpushare[test]"
pytest
```