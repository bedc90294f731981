#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import sys
import enum
import argparse
from collections.abc import Callable
from typing import TypeAlias
import common
import system_environment as system
import llvm_environment as llvm
import binutils_environment as binutils
from build_config import build_parameter, configure, failure_policy


class stage_status(enum.StrEnum):
    success = "success"
    failed = "failed"
    skipped = "skipped"


class stage_result:
    name: str  # 阶段名
    status: stage_status  # 阶段结果
    message: str  # 失败或跳过的原因
    succeeded_targets: list[str]  # 构建成功的目标平台
    failed_targets: list[str]  # 构建失败的目标平台
    pending_targets: list[str]  # 因终止而未尝试构建的目标平台

    def __init__(self, name: str, status: stage_status = stage_status.success, message: str = "") -> None:
        self.name = name
        self.status = status
        self.message = message
        self.succeeded_targets = []
        self.failed_targets = []
        self.pending_targets = []

    @property
    def success(self) -> bool:
        return self.status == stage_status.success


def check_backend(param: build_parameter) -> stage_result:
    """检查目标平台与clang启用的后端是否一致

    Args:
        param (build_parameter): 构建参数
    """
    result = stage_result("check")
    mismatch_list = llvm.check_target_backend(param.targets, param.llvm_targets)
    for target in mismatch_list:
        print(f'[clanger] Warning: target "{target}" has no LLVM backend in {";".join(param.llvm_targets)}.')
    if mismatch_list and param.strict_backend:
        result.status = stage_status.failed
        result.message = f"No LLVM backend for targets: {' '.join(mismatch_list)}."
        result.failed_targets = mismatch_list
    return result


def prepare_system(param: build_parameter) -> stage_result:
    """安装系统包，跳过安装时检查宿主工具

    Args:
        param (build_parameter): 构建参数
    """
    if param.system:
        system.install_system_packages()
    else:
        system.check_host_tools()
    return stage_result("system")


def build_llvm(param: build_parameter) -> stage_result:
    """构建通用clang

    Args:
        param (build_parameter): 构建参数
    """
    env = llvm.environment(param.clang_version, param.work_dir, param.clang_prefix, param.llvm_targets, param.jobs)
    env.build()
    return stage_result("llvm")


def build_binutils(param: build_parameter) -> stage_result:
    """依次为每个目标平台构建binutils

    Args:
        param (build_parameter): 构建参数
    """
    result = stage_result("binutils")
    if not param.targets:
        print("[clanger] No target is specified, skip building binutils.")
        return result

    for index, target in enumerate(param.targets):
        env = binutils.environment(param.binutils_version, target, param.work_dir, param.get_binutils_prefix(target), param.jobs)
        try:
            env.build()
        except (RuntimeError, OSError) as e:
            print(f"[clanger] Build binutils for {target} failed: {e}")
            result.failed_targets.append(target)
            if param.policy == failure_policy.abort:
                result.pending_targets = list(param.targets[index + 1 :])
                break
        else:
            result.succeeded_targets.append(target)
        if not common.command_dry_run.get():
            print(f"[clanger] Free disk space: {common.get_free_space_MB(param.work_dir)} MiB.")

    if result.failed_targets:
        result.status = stage_status.failed
        result.message = f"Build binutils failed for: {' '.join(result.failed_targets)}."
    return result


stage_fn: TypeAlias = Callable[[build_parameter], stage_result]


def get_stage_list() -> list[tuple[str, stage_fn]]:
    """获取按执行顺序排列的构建阶段

    Returns:
        list[tuple[str, stage_fn]]: [(阶段名, 阶段函数)]
    """
    return [("check", check_backend), ("system", prepare_system), ("llvm", build_llvm), ("binutils", build_binutils)]


class build_pipeline:
    param: build_parameter  # 构建参数
    stage_list: list[tuple[str, stage_fn]]  # 构建阶段

    def __init__(self, param: build_parameter, stage_list: list[tuple[str, stage_fn]] | None = None) -> None:
        self.param = param
        self.stage_list = stage_list if stage_list is not None else get_stage_list()

    def run(self) -> list[stage_result]:
        """依次运行所有阶段，前一阶段未成功时跳过后续阶段

        Returns:
            list[stage_result]: 各个阶段的结果
        """
        result_list: list[stage_result] = []
        for name, fn in self.stage_list:
            if result_list and not result_list[-1].success:
                result_list.append(stage_result(name, stage_status.skipped, f'Stage "{result_list[-1].name}" did not succeed.'))
                continue
            print(f"[clanger] Enter stage {name}.")
            try:
                result = fn(self.param)
            except (RuntimeError, OSError) as e:
                result = stage_result(name, stage_status.failed, str(e))
            result_list.append(result)
        return result_list


def has_failure(result_list: list[stage_result]) -> bool:
    return any(not result.success for result in result_list)


def dump_summary(result_list: list[stage_result]) -> None:
    """打印各个阶段的结果

    Args:
        result_list (list[stage_result]): 各个阶段的结果
    """
    print("[clanger] Build summary:")
    for result in result_list:
        line = f"\t{result.name}: {result.status}"
        if result.message:
            line += f" ({result.message})"
        print(line)
        for title, target_list in (
            ("Succeeded", result.succeeded_targets),
            ("Failed", result.failed_targets),
            ("Not attempted", result.pending_targets),
        ):
            if target_list:
                print(f"\t\t{title}: {' '.join(target_list)}")


def _installed_echo(prefix: str, version_str: str) -> str:
    match common.check_version(prefix, version_str):
        case 1:
            return "Installed=newer"
        case 0:
            return "Installed=True"
        case _:
            return "Installed=False"


def dump_info(param: build_parameter) -> None:
    """打印系统包、安装路径和安装状态"""
    print("System packages:")
    for package in system.system_package_list:
        print(f"\t{package}")
    print(f"\nClang {param.clang_version} ({';'.join(param.llvm_targets)}):")
    print(f"\t{param.clang_prefix}, {_installed_echo(param.clang_prefix, param.clang_version)}")
    print(f"\nBinutils {param.binutils_version}:")
    for target in param.targets:
        prefix = param.get_binutils_prefix(target)
        print(f"\t{target}: {prefix}, {_installed_echo(prefix, param.binutils_version)}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Build a universal clang and per-target binutils for ARM cross compiling.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    configure.add_argument(parser)
    parser.add_argument("--dump", action="store_true", help="Print packages, install prefixes and install status, then exit.")
    args = parser.parse_args(argv)

    current_config = configure.parse_args(args)
    current_config.load_config(args, configure.get_explicit_args(parser, argv))
    current_config.check()
    param = current_config.freeze()

    if args.dump:
        dump_info(param)
        current_config.save_config(args)
        return 0

    result_list = build_pipeline(param).run()
    dump_summary(result_list)
    current_config.save_config(args)
    return 1 if has_failure(result_list) else 0


if __name__ == "__main__":
    sys.exit(main())
