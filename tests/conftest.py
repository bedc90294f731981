"""Shared test fixtures."""

import json
import os
import shlex
from collections.abc import Callable

import pytest

import common
from build_config import build_parameter, failure_policy


class fake_shell:
    """Records commands instead of running them and mimics their filesystem effects."""

    def __init__(self) -> None:
        self.command_list: list[tuple[str, str | None]] = []
        self.fail_rule_list: list[Callable[[str, str | None], bool]] = []
        self.observer_list: list[Callable[[str, str | None], None]] = []
        self._configure_option: dict[str, dict[str, str]] = {}

    def fail_when(self, rule: Callable[[str, str | None], bool]) -> None:
        self.fail_rule_list.append(rule)

    def observe(self, observer: Callable[[str, str | None], None]) -> None:
        self.observer_list.append(observer)

    @property
    def commands(self) -> list[str]:
        return [command for command, _ in self.command_list]

    def __call__(self, command, ignore_error=False, capture=False, echo=True, cwd=None, dry_run=None):
        self.command_list.append((command, cwd))
        for observer in self.observer_list:
            observer(command, cwd)
        if any(rule(command, cwd) for rule in self.fail_rule_list):
            if ignore_error:
                return None
            raise RuntimeError(f'Command "{command}" failed.')
        self._apply(command, cwd)
        return None

    def _apply(self, command: str, cwd: str | None) -> None:
        argv = shlex.split(command)
        match argv:
            case ["wget", _, "-O", path]:
                with open(path, "w") as file:
                    file.write("archive")
            case ["tar", "-xaf", archive, "-C", dest]:
                name = os.path.basename(archive).removesuffix(".tar.xz")
                os.makedirs(os.path.join(dest, name), exist_ok=True)
            case ["git", "clone", *_, source_dir]:
                os.makedirs(os.path.join(source_dir, "llvm"), exist_ok=True)
            case ["./configure", *option_list]:
                assert cwd is not None
                self._configure_option[cwd] = dict(option.lstrip("-").split("=", 1) for option in option_list if "=" in option)
            case ["make", "install"]:
                assert cwd is not None
                option = self._configure_option[cwd]
                bin_dir = os.path.join(option["prefix"], "bin")
                os.makedirs(bin_dir, exist_ok=True)
                open(os.path.join(bin_dir, f"{option['target']}-ld.gold"), "w").close()
            case ["cmake", "--build", _, "--target", "install"]:
                assert cwd is not None
                with open(os.path.join(cwd, "CMakePresets.json")) as file:
                    preset = json.load(file)
                prefix = preset["configurePresets"][0]["cacheVariables"]["CMAKE_INSTALL_PREFIX"]
                os.makedirs(os.path.join(prefix, "bin"), exist_ok=True)
                open(os.path.join(prefix, "bin", "clang"), "w").close()


@pytest.fixture(autouse=True)
def reset_dry_run():
    common.command_dry_run.set(False)
    yield
    common.command_dry_run.set(False)


@pytest.fixture
def shell(monkeypatch: pytest.MonkeyPatch) -> fake_shell:
    fake = fake_shell()
    monkeypatch.setattr(common, "run_command", fake)
    return fake


@pytest.fixture
def make_param(tmp_path) -> Callable[..., build_parameter]:
    work_dir = tmp_path / "work"
    work_dir.mkdir()

    def factory(**kwargs) -> build_parameter:
        value = {
            "clang_version": "20.1.1",
            "binutils_version": "2.43.1",
            "targets": ("arm-none-eabihf", "arm-linux-gnueabihf", "aarch64-linux-gnu"),
            "llvm_targets": ("ARM", "AArch64"),
            "work_dir": str(work_dir),
            "prefix_dir": str(tmp_path / "opt" / "tools"),
            "jobs": 4,
            "policy": failure_policy.abort,
            "system": True,
            "strict_backend": False,
            **kwargs,
        }
        return build_parameter(**value)

    return factory
