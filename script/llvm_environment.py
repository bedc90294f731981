#!/usr/bin/python3
# -*- coding: utf-8 -*-
import os
import json
import typing
import packaging.version as version
import common

llvm_repo_url = "https://github.com/llvm/llvm-project.git"
preset_name = "universal-clang"

# 架构前缀到llvm后端的映射，按前缀长度从长到短匹配
llvm_backend_list: typing.Final[dict[str, str]] = {
    "aarch64": "AArch64",
    "arm64": "AArch64",
    "arm": "ARM",
    "thumb": "ARM",
    "x86_64": "X86",
    "i386": "X86",
    "i486": "X86",
    "i586": "X86",
    "i686": "X86",
    "riscv": "RISCV",
    "loongarch": "LoongArch",
    "mips": "Mips",
    "powerpc": "PowerPC",
    "ppc": "PowerPC",
    "wasm": "WebAssembly",
}

llvm_option_list: typing.Final[dict[str, str]] = {
    "CMAKE_BUILD_TYPE": "Release",  # < 设置构建类型
    "LLVM_ENABLE_PROJECTS": "clang;lld",  # < 设置一同构建的子项目
    "LLVM_BUILD_DOCS": "OFF",  # < 禁用llvm文档构建
    "LLVM_BUILD_EXAMPLES": "OFF",  # < 禁用llvm示例构建
    "LLVM_INCLUDE_BENCHMARKS": "OFF",  # < 禁用llvm基准测试构建
    "LLVM_INCLUDE_EXAMPLES": "OFF",  # < llvm不包含示例
    "LLVM_INCLUDE_TESTS": "OFF",  # < llvm不包含单元测试
    "CLANG_INCLUDE_TESTS": "OFF",  # < clang不包含单元测试
    "LLVM_ENABLE_WARNINGS": "OFF",  # < 禁用警告
    "CMAKE_BUILD_WITH_INSTALL_RPATH": "ON",  # < 在linux系统上设置rpath以避免动态库环境混乱
}


def get_llvm_backend(target: str) -> str | None:
    """获取能为目标平台生成代码的llvm后端

    Args:
        target (str): 目标平台

    Returns:
        str | None: llvm后端名称，未知架构返回None
    """
    arch = common.triplet_field(target).arch
    for prefix in sorted(llvm_backend_list, key=len, reverse=True):
        if arch.startswith(prefix):
            return llvm_backend_list[prefix]
    return None


def check_target_backend(target_list: typing.Iterable[str], llvm_target_list: typing.Iterable[str]) -> list[str]:
    """检查目标平台的架构是否在clang启用的后端中

    Args:
        target_list (Iterable[str]): 目标平台列表
        llvm_target_list (Iterable[str]): 启用的llvm后端

    Returns:
        list[str]: 没有对应后端的目标平台，保持输入顺序且不重复
    """
    enabled = {backend.lower() for backend in llvm_target_list}
    if "all" in enabled:
        return []
    mismatch_list: list[str] = []
    for target in target_list:
        backend = get_llvm_backend(target)
        if (backend is None or backend.lower() not in enabled) and target not in mismatch_list:
            mismatch_list.append(target)
    return mismatch_list


class environment:
    """通用clang的构建环境，clang的构建与目标平台数量无关"""

    version: str  # 版本号
    major_version: int  # 主版本号
    tag: str  # 源代码的git标签
    jobs: int  # 编译所用线程数
    llvm_targets: tuple[str, ...]  # 启用的llvm后端
    source_dir: str  # 源代码所在的目录
    llvm_dir: str  # llvm子项目所在目录，即CMakePresets.json所在目录
    build_dir: str  # 构建时所在目录
    prefix: str  # 安装目录
    bin_dir: str  # 安装后可执行文件所在目录

    def __init__(self, version_str: str, work_dir: str, prefix: str, llvm_targets: typing.Iterable[str], jobs: int) -> None:
        self.version = version_str
        self.major_version = version.Version(version_str).major
        self.tag = f"llvmorg-{version_str}"
        self.jobs = jobs
        self.llvm_targets = tuple(llvm_targets)
        self.source_dir = os.path.join(work_dir, "llvm-project")
        self.llvm_dir = os.path.join(self.source_dir, "llvm")
        self.build_dir = os.path.join(self.llvm_dir, "build")
        self.prefix = prefix
        self.bin_dir = os.path.join(self.prefix, "bin")

    def get_preset(self) -> dict:
        """生成cmake预设

        Returns:
            dict: CMakePresets.json的内容
        """
        cache_variables = {
            **llvm_option_list,
            "LLVM_TARGETS_TO_BUILD": ";".join(self.llvm_targets),
            "CMAKE_INSTALL_PREFIX": self.prefix,
        }
        return {
            "version": 3,
            "cmakeMinimumRequired": {"major": 3, "minor": 21, "patch": 0},
            "configurePresets": [
                {
                    "name": preset_name,
                    "displayName": "Universal clang",
                    "description": f"Clang {self.version} with backends {', '.join(self.llvm_targets)}",
                    "generator": "Ninja",
                    "binaryDir": self.build_dir,
                    "cacheVariables": cache_variables,
                }
            ],
            "buildPresets": [{"name": preset_name, "configurePreset": preset_name, "jobs": self.jobs}],
        }

    def clone(self) -> None:
        """浅克隆指定标签的源代码"""
        common.remove_if_exists(self.source_dir)
        common.run_command(f"git clone --depth=1 --single-branch --branch {self.tag} {llvm_repo_url} {self.source_dir}")

    @common._support_dry_run(lambda self: f"[clanger] Write cmake preset {preset_name} to {self.llvm_dir}.")
    def write_preset(self, dry_run: bool | None = None) -> None:
        """将cmake预设写入llvm目录"""
        with open(os.path.join(self.llvm_dir, "CMakePresets.json"), "w") as file:
            json.dump(self.get_preset(), file, indent=4)

    def config(self) -> None:
        """应用预设生成构建文件"""
        common.run_command(f'cmake --preset="{preset_name}"', cwd=self.llvm_dir)

    def make(self) -> None:
        """构建clang"""
        common.run_command(f'cmake --build --preset="{preset_name}"', cwd=self.llvm_dir)

    def install(self) -> None:
        """安装clang并记录版本"""
        common.run_command(f'cmake --build --preset="{preset_name}" --target install', cwd=self.llvm_dir)
        common.save_version(self.prefix, self.version)

    def remove_source(self) -> None:
        """删除源代码以节省空间"""
        common.remove_if_exists(self.source_dir)

    def build(self) -> None:
        """构建通用clang，任何一步失败都会抛出异常"""
        print(f"[clanger] Compiling clang {self.version} for backends {' '.join(self.llvm_targets)}")
        self.clone()
        self.write_preset()
        self.config()
        self.make()
        self.install()
        self.remove_source()


assert __name__ != "__main__", "Import this file instead of running it directly."
