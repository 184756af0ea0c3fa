"""
Tests for the lifecycle orchestrator.

The manager is exercised against in-memory collaborators so each test can
script hook results and observe acquisition, cache and event calls.

This test suite covers:
1. Install, upgrade, uninstall and toggles
2. Wrapped vs unwrapped hook failures
3. Permission checks
4. Cache clearing once per batch
5. Reset with and without a reset-capable implementation
6. Errors and notifications
"""

import pytest

from modhub.modules.events import LifecycleEvent
from modhub.modules.manager import (
    INVALID_MODULE_MESSAGE,
    NO_DETAILS_MESSAGE,
    ActionParams,
    ModuleManager,
    NotInstalledError,
    OperationFailed,
    PackageNotFound,
    PermissionDenied,
)


class FakeInstance:
    def __init__(self, warning=""):
        self.warning = warning
        self.errors = []

    def get_errors(self):
        return list(self.errors)


class FakeDescriptor:
    """Descriptor whose hook results are scripted per hook name."""

    def __init__(self, repository, name, results=None, valid=True, marketplace=False,
                 supports_reset=False, upgradable=False, warning=""):
        self.repository = repository
        self.name = name
        self.results = results or {}
        self.valid = valid
        self.marketplace = marketplace
        self.supports_reset = supports_reset
        self.upgradable = upgradable
        self.instance = FakeInstance(warning) if valid else None
        self.calls = []

    def _run(self, hook, *args):
        self.calls.append((hook, *args))
        result = self.results.get(hook, True)
        if isinstance(result, Exception):
            raise result
        return result

    def has_valid_instance(self):
        return self.valid

    def get_instance(self):
        return self.instance

    def can_be_upgraded(self):
        return self.upgradable

    def can_be_upgraded_from_marketplace(self):
        return self.marketplace

    def on_install(self):
        result = self._run("install")
        if result:
            self.repository.installed.add(self.name)
        return result

    def on_post_install(self):
        return self._run("post_install")

    def on_uninstall(self):
        result = self._run("uninstall")
        if result:
            self.repository.installed.discard(self.name)
        return result

    def on_upgrade(self, version):
        return self._run("upgrade", version)

    def on_enable(self):
        return self._run("enable")

    def on_disable(self):
        return self._run("disable")

    def on_variant_enable(self):
        return self._run("enable_variant")

    def on_variant_disable(self):
        return self._run("disable_variant")

    def on_reset(self):
        return self._run("reset")


class FakeRepository:
    def __init__(self):
        self.modules = {}
        self.installed = set()
        self.on_disk = set()

    def add(self, name, installed=False, on_disk=True, **kwargs):
        self.modules[name] = FakeDescriptor(self, name, **kwargs)
        if installed:
            self.installed.add(name)
        if on_disk:
            self.on_disk.add(name)
        return self.modules[name]

    def get_module(self, name):
        if name not in self.modules:
            raise KeyError(name)
        return self.modules[name]

    def is_installed(self, name):
        return name in self.installed

    def is_enabled(self, name):
        return name in self.installed

    def is_on_disk(self, name):
        return name in self.on_disk

    def get_id_by_name(self, name):
        return sorted(self.installed).index(name) + 1 if name in self.installed else 0

    def get_installed_modules(self):
        return [self.modules[n] for n in sorted(self.installed)]


class FakeAcquisition:
    def __init__(self, repository, pull_result=True, delete_result=True):
        self.repository = repository
        self.pull_result = pull_result
        self.delete_result = delete_result
        self.calls = []

    def resolve_name_from_package(self, location):
        self.calls.append(("resolve", location))
        return location.rsplit("/", 1)[-1].removesuffix(".zip")

    def materialize_from_location(self, location):
        self.calls.append(("materialize", location))
        name = self.resolve_name_from_package(location)
        self.repository.on_disk.add(name)
        return name

    def pull_from_marketplace(self, name):
        self.calls.append(("pull", name))
        if self.pull_result:
            self.repository.on_disk.add(name)
        return self.pull_result

    def delete_from_disk(self, name):
        self.calls.append(("delete", name))
        return self.delete_result

    def discard_staged(self):
        self.calls.append(("discard",))


class FakeRunner:
    def __init__(self, result=True):
        self.result = result
        self.calls = []

    def run_migrations(self, name):
        self.calls.append(name)
        return self.result


class FakeGate:
    def __init__(self, denied=()):
        self.denied = set(denied)

    def is_allowed(self, action, name=None):
        return action not in self.denied


class FakeInvalidator:
    def __init__(self):
        self.count = 0

    def clear(self):
        self.count += 1


class FakeNotifier:
    def __init__(self):
        self.events = []

    def publish(self, event, descriptor):
        self.events.append((event, descriptor.name))


class FakeBuilder:
    def __init__(self):
        self.calls = []

    def generate_action_urls_for(self, collection, preferred_action=None):
        self.calls.append((collection.names(), preferred_action))
        return collection


@pytest.fixture
def env():
    repository = FakeRepository()
    acquisition = FakeAcquisition(repository)
    runner = FakeRunner()
    gate = FakeGate()
    invalidator = FakeInvalidator()
    notifier = FakeNotifier()
    builder = FakeBuilder()
    manager = ModuleManager(repository, acquisition, runner, gate, invalidator, notifier, builder)
    return manager


class TestInstall:
    """Test install."""

    @pytest.mark.parametrize("hook_result", [True, False])
    def test_installed_iff_hook_succeeds(self, env, hook_result):
        env.repository.add("mailalert", results={"install": hook_result})

        assert env.install("mailalert") is hook_result
        assert env.is_installed("mailalert") is hook_result

    def test_marketplace_pull_scenario(self, env):
        """A module missing from disk is pulled, installed, cached once and announced."""
        env.repository.add("mailalert", on_disk=False, marketplace=True)

        assert env.install("mailalert") is True

        assert env.is_installed("mailalert")
        assert env.acquisition.calls == [("pull", "mailalert")]
        assert env.cache_invalidator.count == 1
        assert env.events.events == [(LifecycleEvent.INSTALL, "mailalert")]

    def test_pull_failure_raises_package_not_found(self, env):
        env.repository.add("mailalert", on_disk=False)
        env.acquisition.pull_result = False

        with pytest.raises(PackageNotFound, match="could not be found on the marketplace"):
            env.install("mailalert")
        assert env.events.events == []

    def test_install_from_location(self, env, tmp_path):
        archive = tmp_path / "statsdata.zip"
        archive.write_bytes(b"")
        env.repository.add("statsdata", on_disk=False)

        assert env.install(str(archive)) is True
        assert ("materialize", str(archive)) in env.acquisition.calls

    def test_denied_upgrade_from_location_discards_package(self, env, tmp_path):
        """A staged package is dropped when the upgrade it hands off to is refused."""
        archive = tmp_path / "mailalert.zip"
        archive.write_bytes(b"")
        env.repository.add("mailalert", installed=True)
        env.permissions.denied.add("upgrade")

        with pytest.raises(PermissionDenied, match="upgrade the module mailalert"):
            env.install(str(archive))
        assert env.acquisition.calls == [("resolve", str(archive)), ("discard",)]

    def test_installed_module_is_upgraded(self, env):
        module = env.repository.add("mailalert", installed=True)

        assert env.install("mailalert") is True
        assert module.calls == [("upgrade", "latest")]
        assert env.events.events == [(LifecycleEvent.UPGRADE, "mailalert")]

    def test_install_hook_exception_propagates(self, env):
        """Install hook exceptions reach the caller unchanged."""
        env.repository.add("mailalert", results={"install": ValueError("no database")})

        with pytest.raises(ValueError, match="no database"):
            env.install("mailalert")
        assert env.cache_invalidator.count == 0

    def test_failed_install_still_announced(self, env):
        env.repository.add("mailalert", results={"install": False})

        env.install("mailalert")
        assert env.cache_invalidator.count == 0
        assert env.events.events == [(LifecycleEvent.INSTALL, "mailalert")]

    def test_permission_denied(self, env):
        env.repository.add("mailalert")
        env.permissions.denied.add("install")

        with pytest.raises(PermissionDenied, match="You are not allowed to install modules."):
            env.install("mailalert")
        assert env.acquisition.calls == []


class TestPostInstall:
    """Test post_install."""

    def test_requires_installed_module_on_disk(self, env):
        env.repository.add("mailalert")
        assert env.post_install("mailalert") is False

        env.repository.add("ghost", installed=True, on_disk=False)
        assert env.post_install("ghost") is False

    def test_runs_hook(self, env):
        module = env.repository.add("mailalert", installed=True)

        assert env.post_install("mailalert") is True
        assert module.calls == [("post_install",)]
        assert env.events.events == [(LifecycleEvent.POST_INSTALL, "mailalert")]


class TestUninstall:
    """Test uninstall."""

    @pytest.mark.parametrize("hook_result", [True, False])
    def test_no_deletion_by_default(self, env, hook_result):
        env.repository.add("mailalert", installed=True, results={"uninstall": hook_result})

        assert env.uninstall("mailalert") is hook_result
        assert ("delete", "mailalert") not in env.acquisition.calls

    def test_deletion(self, env):
        env.repository.add("mailalert", installed=True)
        env.set_action_params(deletion=True)

        assert env.uninstall("mailalert") is True
        assert env.acquisition.calls == [("delete", "mailalert")]

    def test_failed_deletion(self, env):
        """A failed deletion reports False but the module stays uninstalled."""
        env.repository.add("mailalert", installed=True)
        env.acquisition.delete_result = False
        env.set_action_params(deletion=True)

        assert env.uninstall("mailalert") is False
        assert not env.is_installed("mailalert")
        assert env.cache_invalidator.count == 0

    def test_not_installed(self, env):
        env.repository.add("mailalert")

        with pytest.raises(NotInstalledError, match="The module mailalert must be installed first"):
            env.uninstall("mailalert")

    def test_permission_denied(self, env):
        env.repository.add("mailalert", installed=True)
        env.permissions.denied.add("uninstall")

        with pytest.raises(PermissionDenied, match="uninstall the module mailalert"):
            env.uninstall("mailalert")


class TestUpgrade:
    """Test upgrade."""

    def test_local_module_skips_acquisition(self, env):
        module = env.repository.add("statsdata", installed=True, marketplace=False)

        assert env.upgrade("statsdata", "latest") is True
        assert env.acquisition.calls == []
        assert env.upgrade_runner.calls == ["statsdata"]
        assert module.calls == [("upgrade", "latest")]

    def test_failed_migration_fails_upgrade(self, env):
        """The result is migrations AND hook."""
        module = env.repository.add("statsdata", installed=True)
        env.upgrade_runner.result = False

        assert env.upgrade("statsdata", "latest") is False
        assert module.calls == []
        assert env.cache_invalidator.count == 0

    def test_marketplace_pull_is_optional(self, env):
        env.repository.add("mailalert", installed=True, marketplace=True)
        env.acquisition.pull_result = False

        assert env.upgrade("mailalert") is True
        assert env.acquisition.calls == [("pull", "mailalert")]

    def test_source_is_materialized(self, env):
        env.repository.add("mailalert", installed=True)

        assert env.upgrade("mailalert", "2.0.0", "/tmp/mailalert.zip")
        assert env.acquisition.calls[0] == ("materialize", "/tmp/mailalert.zip")

    def test_not_installed(self, env):
        env.repository.add("mailalert")

        with pytest.raises(NotInstalledError):
            env.upgrade("mailalert")
        assert env.upgrade_runner.calls == []


class TestToggles:
    """Test enable/disable and the variant flag."""

    @pytest.mark.parametrize(
        "operation", ["enable", "disable", "enable_on_variant", "disable_on_variant"]
    )
    def test_not_installed_never_runs_hook(self, env, operation):
        module = env.repository.add("mailalert")

        with pytest.raises(NotInstalledError):
            getattr(env, operation)("mailalert")
        assert module.calls == []

    def test_enable_and_disable_publish(self, env):
        env.repository.add("mailalert", installed=True)

        assert env.enable("mailalert")
        env.new_batch()
        assert env.disable("mailalert")
        assert env.events.events == [
            (LifecycleEvent.ENABLE, "mailalert"),
            (LifecycleEvent.DISABLE, "mailalert"),
        ]
        assert env.cache_invalidator.count == 2

    def test_variant_publishes_nothing(self, env):
        module = env.repository.add("mailalert", installed=True)

        assert env.enable_on_variant("mailalert")
        assert env.disable_on_variant("mailalert")
        assert module.calls == [("enable_variant",), ("disable_variant",)]
        assert env.events.events == []

    def test_hook_exception_is_wrapped(self, env):
        error = RuntimeError("hook exploded")
        env.repository.add("mailalert", installed=True, results={"enable": error})

        with pytest.raises(OperationFailed) as excinfo:
            env.enable("mailalert")

        assert str(excinfo.value) == "Error when enabling module mailalert. hook exploded"
        assert excinfo.value.module_name == "mailalert"
        assert excinfo.value.detail == "hook exploded"
        assert excinfo.value.__cause__ is error

    def test_variant_exception_message(self, env):
        env.repository.add("mailalert", installed=True, results={"disable_variant": OSError("locked")})

        with pytest.raises(OperationFailed, match="Error when disabling module mailalert on variant. locked"):
            env.disable_on_variant("mailalert")

    def test_permission_messages(self, env):
        env.repository.add("mailalert", installed=True)
        env.permissions.denied.update({"enable", "enable_variant"})

        with pytest.raises(PermissionDenied, match="^You are not allowed to enable the module mailalert.$"):
            env.enable("mailalert")
        with pytest.raises(PermissionDenied, match="enable the module mailalert on variant"):
            env.enable_on_variant("mailalert")


class TestCacheClearing:
    """Test cache clearing and action parameters."""

    def test_cleared_once_per_batch(self, env):
        env.repository.add("mailalert", installed=True)

        assert env.enable("mailalert")
        assert env.disable("mailalert")
        assert env.enable("mailalert")
        assert env.cache_invalidator.count == 1

        env.new_batch()
        env.disable("mailalert")
        assert env.cache_invalidator.count == 2

    def test_cache_clear_disabled(self, env):
        env.repository.add("mailalert", installed=True)
        env.set_action_params(cache_clear_enabled=False)

        env.enable("mailalert")
        assert env.cache_invalidator.count == 0

    def test_params_are_replaced_not_merged(self, env):
        env.set_action_params(deletion=True, source="cli")
        env.set_action_params({"cache_clear_enabled": False})

        assert env.action_params.deletion is False
        assert env.action_params.get("source") is None
        assert env.action_params.cache_clear_enabled is False

        env.reset_action_params()
        assert env.action_params == ActionParams()

    def test_params_persist_between_calls(self, env):
        env.repository.add("one", installed=True)
        env.repository.add("two", installed=True)
        env.set_action_params(deletion=True)

        env.uninstall("one")
        env.uninstall("two")
        assert env.acquisition.calls == [("delete", "one"), ("delete", "two")]


class TestReset:
    """Test reset."""

    def test_lightweight_reset(self, env):
        module = env.repository.add("mailalert", installed=True, supports_reset=True)

        assert env.reset("mailalert", keep_data=True) is True
        assert module.calls == [("reset",)]
        assert env.events.events == [
            (LifecycleEvent.UNINSTALL, "mailalert"),
            (LifecycleEvent.INSTALL, "mailalert"),
        ]

    @pytest.mark.parametrize("install_result", [True, False])
    def test_fallback_without_reset_capability(self, env, install_result):
        """Without a reset capability the module is uninstalled then installed."""
        module = env.repository.add(
            "mailalert", installed=True, results={"install": install_result}
        )

        assert env.reset("mailalert", keep_data=True) is install_result
        assert env.is_installed("mailalert") is install_result
        assert module.calls == [("uninstall",), ("install",)]

    def test_failed_uninstall_skips_install(self, env):
        module = env.repository.add("mailalert", installed=True, results={"uninstall": False})

        assert env.reset("mailalert") is False
        assert module.calls == [("uninstall",)]

    def test_exception_is_wrapped(self, env):
        env.repository.add(
            "mailalert", installed=True, supports_reset=True, results={"reset": KeyError("cfg")}
        )

        with pytest.raises(OperationFailed, match="Error when resetting module mailalert."):
            env.reset("mailalert", keep_data=True)

    def test_needs_install_and_uninstall_rights(self, env):
        env.repository.add("mailalert", installed=True)
        env.permissions.denied.add("install")

        with pytest.raises(PermissionDenied, match="reset the module mailalert"):
            env.reset("mailalert")

    def test_not_installed(self, env):
        env.repository.add("mailalert")

        with pytest.raises(NotInstalledError):
            env.reset("mailalert")


class TestErrorsAndNotifications:
    """Test error lookup and notification grouping."""

    def test_invalid_module_error(self, env):
        env.repository.add("brokenmod", valid=False)
        assert env.get_last_error("brokenmod") == INVALID_MODULE_MESSAGE

    def test_unknown_module_error(self, env):
        assert env.get_error("ghost") == INVALID_MODULE_MESSAGE

    def test_last_error(self, env):
        module = env.repository.add("mailalert")
        assert env.get_error("mailalert") == NO_DETAILS_MESSAGE

        module.instance.errors.extend(["first", "second"])
        assert env.get_error("mailalert") == "second"

    def test_notifications(self, env):
        env.repository.add("paypal", installed=True, warning="API key missing", upgradable=True)
        env.repository.add("mailalert", installed=True)
        env.repository.add("statsdata", installed=True, upgradable=True)
        env.repository.add("broken", installed=True, valid=False)

        assert env.count_modules_with_notifications_detailed() == {
            "count": 3,
            "to_configure": 1,
            "to_update": 2,
        }

        result = env.get_modules_with_notifications(lambda collection: collection.names())
        assert result == {"to_configure": ["paypal"], "to_update": ["paypal", "statsdata"]}
        assert env.builder.calls == [
            (["paypal"], "configure"),
            (["paypal", "statsdata"], "upgrade"),
        ]

    def test_shortcuts(self, env):
        env.repository.add("mailalert", installed=True)

        assert env.is_enabled("mailalert")
        assert env.get_module_id_by_name("mailalert") == 1
        assert env.get_module_id_by_name("ghost") == 0
        assert env.remove_module_from_disk("mailalert") is True
