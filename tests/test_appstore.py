import pytest

from habitat_node.appstore import AppListError, render_dev_apps_list

RAW = b"""
- app_installation:
    name: pouch_backend
    version: 1
    driver: docker

    driver_config:
      env:
        - PORT=6000
      mounts:
        - type: bind
          source: {{.HabitatPath}}/apps/pouch/database.sqlite
          target: /app/database.sqlite
      exposed_ports:
        - "6000"
      port_bindings:
        "6000/tcp":
          - HostIp: "0.0.0.0"
            HostPort: "6000"

    registry_url_base: registry.hub.docker.com
    registry_app_id: ethangraf/pouch-backend
    registry_tag: release-3"""

PATH = "/home/fakeuser/.habitat"


def test_render_dev_apps_list():
    apps = render_dev_apps_list(PATH, RAW)
    assert len(apps) == 1
    installation = apps[0]["app_installation"]
    assert installation["name"] == "pouch_backend"
    assert installation["version"] == "1"

    driver_config = installation["driver_config"]
    mounts = driver_config["mounts"]
    assert len(mounts) == 1
    assert mounts[0]["type"] == "bind"
    assert mounts[0]["source"] == "/home/fakeuser/.habitat/apps/pouch/database.sqlite"
    assert driver_config["exposed_ports"] == ["6000"]


def test_render_accepts_str_and_spaced_action():
    apps = render_dev_apps_list("/data", "- app_installation:\n    name: {{ .HabitatPath }}\n")
    assert apps[0]["app_installation"]["name"] == "/data"


def test_bad_app_list():
    with pytest.raises(AppListError):
        render_dev_apps_list(PATH, b"not yaml")


def test_unknown_template_field():
    with pytest.raises(AppListError):
        render_dev_apps_list(PATH, b"- source: {{.Missing}}\n")


def test_unclosed_action():
    with pytest.raises(AppListError):
        render_dev_apps_list(PATH, b"- source: {{.HabitatPath\n")


def test_empty_list():
    assert render_dev_apps_list(PATH, b"") == []