import os

import pytest

import build_clanger
from build_clanger import build_pipeline, stage_result, stage_status
from build_config import failure_policy


def _status(result_list: list[stage_result]) -> dict[str, stage_status]:
    return {result.name: result.status for result in result_list}


def _binutils_wget(shell) -> list[str]:
    return [command for command in shell.commands if command.startswith("wget")]


def test_full_pipeline_runs_stages_in_order(make_param, shell) -> None:
    param = make_param()

    result_list = build_pipeline(param).run()

    assert [result.name for result in result_list] == ["check", "system", "llvm", "binutils"]
    assert all(result.success for result in result_list)
    assert shell.commands[0] == "apt-get update"
    assert shell.commands[1].startswith("apt-get install -y cmake")
    first_clone = next(index for index, command in enumerate(shell.commands) if command.startswith("git clone"))
    first_wget = next(index for index, command in enumerate(shell.commands) if command.startswith("wget"))
    assert first_clone < first_wget
    assert len(_binutils_wget(shell)) == len(param.targets)


def test_each_target_installs_into_its_own_prefix(make_param, shell) -> None:
    param = make_param()

    build_pipeline(param).run()

    prefix_list = [param.get_binutils_prefix(target) for target in param.targets]
    assert len(set(prefix_list)) == len(prefix_list)
    for target, prefix in zip(param.targets, prefix_list):
        assert os.listdir(os.path.join(prefix, "bin")) == [f"{target}-ld.gold"]
    assert sorted(os.listdir(os.path.join(param.prefix_dir, "binutils"))) == sorted(param.targets)
    assert os.path.exists(os.path.join(param.clang_prefix, "bin", "clang"))


def test_empty_target_list_is_a_successful_no_op(make_param, shell, capsys: pytest.CaptureFixture[str]) -> None:
    param = make_param(targets=())

    result = build_clanger.build_binutils(param)

    assert result.success
    assert shell.commands == []
    assert result.succeeded_targets == []
    assert "skip building binutils" in capsys.readouterr().out
    assert not os.path.exists(os.path.join(param.prefix_dir, "binutils"))


def test_duplicate_target_is_rebuilt_into_same_prefix(make_param, shell) -> None:
    param = make_param(targets=("aarch64-linux-gnu", "aarch64-linux-gnu"))

    result = build_clanger.build_binutils(param)

    assert result.success
    assert result.succeeded_targets == ["aarch64-linux-gnu", "aarch64-linux-gnu"]
    assert shell.commands.count("make install") == 2
    assert os.listdir(os.path.join(param.prefix_dir, "binutils")) == ["aarch64-linux-gnu"]


def test_work_dir_returns_to_baseline_between_targets(make_param, shell) -> None:
    param = make_param()
    snapshot_list: list[list[str]] = []

    def observer(command: str, cwd: str | None) -> None:
        if command.startswith("wget"):
            snapshot_list.append(sorted(os.listdir(param.work_dir)))

    shell.observe(observer)
    build_clanger.build_binutils(param)

    # only the current target owns a directory while it downloads
    assert snapshot_list == [[f"binutils-{target}"] for target in param.targets]
    assert os.listdir(param.work_dir) == []


def test_compiler_fetch_failure_never_enters_binutils(make_param, shell) -> None:
    param = make_param()
    shell.fail_when(lambda command, cwd: command.startswith("git clone"))

    result_list = build_pipeline(param).run()

    assert _status(result_list) == {
        "check": stage_status.success,
        "system": stage_status.success,
        "llvm": stage_status.failed,
        "binutils": stage_status.skipped,
    }
    assert _binutils_wget(shell) == []
    assert "git clone" in result_list[2].message


def test_system_failure_skips_every_later_stage(make_param, shell) -> None:
    param = make_param()
    shell.fail_when(lambda command, cwd: command.startswith("apt-get install"))

    result_list = build_pipeline(param).run()

    assert _status(result_list)["llvm"] is stage_status.skipped
    assert _status(result_list)["binutils"] is stage_status.skipped
    assert not any(command.startswith("git") for command in shell.commands)


def _fail_make_for(target: str):
    return lambda command, cwd: command.startswith("make -j") and cwd is not None and f"binutils-{target}" in cwd


def test_abort_policy_stops_after_first_failed_target(make_param, shell) -> None:
    param = make_param(policy=failure_policy.abort)
    shell.fail_when(_fail_make_for("arm-linux-gnueabihf"))

    result = build_clanger.build_binutils(param)

    assert result.status is stage_status.failed
    assert result.succeeded_targets == ["arm-none-eabihf"]
    assert result.failed_targets == ["arm-linux-gnueabihf"]
    assert result.pending_targets == ["aarch64-linux-gnu"]
    assert len(_binutils_wget(shell)) == 2
    assert os.listdir(param.work_dir) == []


def test_isolate_policy_builds_every_other_target(make_param, shell) -> None:
    param = make_param(policy=failure_policy.isolate)
    shell.fail_when(_fail_make_for("arm-linux-gnueabihf"))

    result = build_clanger.build_binutils(param)

    assert result.status is stage_status.failed
    assert result.succeeded_targets == ["arm-none-eabihf", "aarch64-linux-gnu"]
    assert result.failed_targets == ["arm-linux-gnueabihf"]
    assert result.pending_targets == []
    assert os.path.exists(param.get_binutils_prefix("aarch64-linux-gnu"))
    assert not os.path.exists(param.get_binutils_prefix("arm-linux-gnueabihf"))


def test_summary_lists_failed_targets(make_param, shell, capsys: pytest.CaptureFixture[str]) -> None:
    param = make_param(policy=failure_policy.isolate)
    shell.fail_when(_fail_make_for("arm-none-eabihf"))

    result_list = build_pipeline(param).run()
    build_clanger.dump_summary(result_list)

    out = capsys.readouterr().out
    assert "binutils: failed" in out
    assert "Failed: arm-none-eabihf" in out
    assert "Succeeded: arm-linux-gnueabihf aarch64-linux-gnu" in out
    assert build_clanger.has_failure(result_list)


def test_backend_mismatch_warns_by_default(make_param, shell, capsys: pytest.CaptureFixture[str]) -> None:
    param = make_param(targets=("riscv64-linux-gnu",))

    result = build_clanger.check_backend(param)

    assert result.success
    assert 'Warning: target "riscv64-linux-gnu"' in capsys.readouterr().out


def test_strict_backend_fails_before_any_build(make_param, shell) -> None:
    param = make_param(targets=("aarch64-linux-gnu", "riscv64-linux-gnu"), strict_backend=True)

    result_list = build_pipeline(param).run()

    assert _status(result_list)["check"] is stage_status.failed
    assert result_list[0].failed_targets == ["riscv64-linux-gnu"]
    assert shell.commands == []


def test_no_system_checks_host_tools(make_param, shell, monkeypatch: pytest.MonkeyPatch) -> None:
    param = make_param(system=False)
    monkeypatch.setattr(build_clanger.system, "get_missing_tools", lambda tool_list=(): ["ninja"])

    result_list = build_pipeline(param, build_clanger.get_stage_list()[:2]).run()

    assert _status(result_list)["system"] is stage_status.failed
    assert "ninja" in result_list[1].message
    assert not any(command.startswith("apt-get") for command in shell.commands)


def test_main_dry_run_leaves_no_artifacts(tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
    prefix_dir = tmp_path / "opt"

    code = build_clanger.main(["--dry-run", "--work-dir", str(tmp_path), "--prefix-dir", str(prefix_dir), "--targets", "aarch64-linux-gnu"])

    assert code == 0
    assert list(tmp_path.iterdir()) == []
    out = capsys.readouterr().out
    assert "[clanger] Run command: apt-get update" in out
    assert "Run command: wget https://sourceware.org/pub/binutils/releases/binutils-2.43.1.tar.xz" in out


def test_main_returns_non_zero_on_failure(tmp_path, shell) -> None:
    shell.fail_when(lambda command, cwd: command.startswith("wget"))

    code = build_clanger.main(["--work-dir", str(tmp_path), "--prefix-dir", str(tmp_path / "opt")])

    assert code == 1


def test_main_dump_reports_install_status(tmp_path, shell, capsys: pytest.CaptureFixture[str]) -> None:
    prefix = tmp_path / "opt" / "binutils" / "aarch64-linux-gnu"
    prefix.mkdir(parents=True)
    (prefix / ".version").write_text("2.43.1")

    code = build_clanger.main(["--dump", "--work-dir", str(tmp_path), "--prefix-dir", str(tmp_path / "opt")])

    assert code == 0
    assert shell.commands == []
    out = capsys.readouterr().out
    assert f"aarch64-linux-gnu: {prefix}, Installed=True" in out
    assert "arm-none-eabihf" in out and "Installed=False" in out
