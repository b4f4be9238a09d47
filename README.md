# habitat-node

Building blocks of a Habitat node, usable as a library:

- `habitat_node.json_patch` — `decode_patch` and `apply_patch` for RFC 6902
  patches (`add`, `remove`, `replace`, `move`, `copy`, `test`); failures
  raise `PatchError`.
- `habitat_node.hdb` — `JSONState`, a JSON document kept valid against a
  `Schema` and changed only through JSON patches (`apply_patch`,
  `validate_patch`, `copy`, `load`, `to_bytes`); the abstract `Transition`,
  `State`, `Client`, `HDBManager` and `DatabaseConfig` contracts;
  `TransitionWrapper`, `wrap_transition` and `state_to_json_state`; and the
  errors `DatabaseNotFoundError` and `DatabaseAlreadyExistsError`.
- `habitat_node.state_machine` — `StateMachine`, which enriches, validates and
  applies a batch of transitions on a branch of the current state, hands the
  serialized batch to a `Replicator`, and (with `start_listening`) adopts and
  publishes the committed updates the replicator reports while it is leader.
- `habitat_node.executor` — `IdempotentStateUpdateSubscriber`, which passes
  each `StateUpdate` to the `IdempotentStateUpdateExecutor` registered for its
  transition type, or to a `StateRestorer` for restore updates; failures raise
  `StateUpdateError`.
- `habitat_node.consensus` — `get_server_id` and `get_database_address`.
- `habitat_node.config` — `NodeConfig`, built from defaults, a `habitat.yml`
  file and environment variables with `load_node_config` (or `load_settings`
  for the merged settings alone), or from YAML text with
  `node_config_from_yaml`; `decode_pem_cert` reads a PEM certificate and
  `NodeConfig.tls_context` builds a server TLS context requiring client
  certificates.
- `habitat_node.logsetup` — `new_logger`, which sends the package's log
  records, with timestamps, to a console stream.
- `habitat_node.pds` — `PDSClient` for creating accounts and sessions on a
  personal data server (`DEFAULT_PDS_URL` unless `base_url` is given), and
  `basic_auth_header`; failures raise `PDSError`.
- `habitat_node.appstore` — `render_dev_apps_list`, which fills the habitat
  path into an app list template and parses the YAML result; failures raise
  `AppListError`.
- `habitat_node.routes` — the admin routes `MigrationRoute`,
  `InstallAppRoute`, `StartProcessHandler`, `GetNodeRoute`, `AddUserRoute` and
  `LoginRoute`. Each has a `pattern`, a `method` and a `serve` method that
  takes a `Request` and returns a `Response`. `is_valid_semver` checks
  migration target versions.

## Install

```
pip install .
```

## Examples

```python
from habitat_node.config import node_config_from_yaml

config = node_config_from_yaml("""
default_apps:
  notes:
    app_installation:
      name: notes
      version: 1
      driver: web
""")
for app in config.default_apps():
    print(app["app_installation"]["name"])
```

```python
from habitat_node.json_patch import apply_patch, decode_patch

ops = decode_patch(b'[{"op": "add", "path": "/users", "value": {}}]')
print(apply_patch({}, ops))   # {'users': {}}
```

```python
from habitat_node.routes import MigrationRoute, Request

class Controller:
    def migrate_node_db(self, target_version):
        print("migrating to", target_version)

route = MigrationRoute(Controller())
response = route.serve(Request("POST", route.pattern, b'{"target_version": "v0.0.2"}'))
print(response.status)   # 200
```

## What this package does not do

- It has no command and runs no HTTP server: the routes are plain objects
  that turn a `Request` into a `Response`, to be mounted in a server of your
  choice.
- It has no replication or consensus engine and no database manager on disk:
  `Replicator`, `HDBManager` and `Client` are contracts to implement.
- It has no node schema, node state types or node controller: routes and the
  state machine take any object that provides the methods they call
  (`migrate_node_db`, `install_app`, `get_app_by_id`, `start_process`,
  `add_user`, `create_session`, `get_database_client_by_name`).
- It ships no built-in app list; `render_dev_apps_list` renders one you pass
  in.

## Tests

```
pip install .[test]
pytest
```