#!/usr/bin/python3
# -*- coding: utf-8 -*-
import os
import common

binutils_release_url = "https://sourceware.org/pub/binutils/releases"


def get_configure_option(target: str, prefix: str) -> list[str]:
    """获取binutils的配置选项

    Args:
        target (str): 目标平台
        prefix (str): 安装目录

    Returns:
        list[str]: 配置选项
    """
    return [f'--prefix="{prefix}"', "--enable-gold", "--enable-ld", f'--target="{target}"', "--disable-multilib"]


class environment:
    """单个目标平台的binutils构建环境"""

    version: str  # 版本号
    target: str  # 目标平台
    jobs: int  # 编译所用线程数
    name: str  # 带版本号的包名
    url: str  # 源代码包的下载地址
    work_dir: str  # 该目标独占的工作目录
    archive_path: str  # 下载后源代码包所在路径
    source_dir: str  # 解压后源代码所在目录
    prefix: str  # 安装目录
    bin_dir: str  # 安装后可执行文件所在目录

    def __init__(self, version_str: str, target: str, work_dir: str, prefix: str, jobs: int) -> None:
        common.check_triplet(target)
        self.version = version_str
        self.target = target
        self.jobs = jobs
        self.name = f"binutils-{self.version}"
        self.url = f"{binutils_release_url}/{self.name}.tar.xz"
        # 每个目标使用独立的工作目录，避免下载和解压时互相覆盖
        self.work_dir = os.path.join(work_dir, f"binutils-{self.target}")
        self.archive_path = os.path.join(self.work_dir, f"{self.name}.tar.xz")
        self.source_dir = os.path.join(self.work_dir, self.name)
        self.prefix = prefix
        self.bin_dir = os.path.join(self.prefix, "bin")

    def download(self) -> None:
        """下载源代码包"""
        common.mkdir(self.work_dir)
        common.run_command(f'wget {self.url} -O "{self.archive_path}"')

    def extract(self) -> None:
        """解压源代码包"""
        common.run_command(f'tar -xaf "{self.archive_path}" -C "{self.work_dir}"')

    def configure(self) -> None:
        """针对目标平台进行配置"""
        options = " ".join(get_configure_option(self.target, self.prefix))
        common.run_command(f"./configure {options}", cwd=self.source_dir)

    def make(self) -> None:
        """编译binutils"""
        common.run_command(f"make -j{self.jobs}", cwd=self.source_dir)

    def install(self) -> None:
        """安装binutils并记录版本"""
        common.run_command("make install", cwd=self.source_dir)
        common.save_version(self.prefix, self.version)

    def clean(self) -> None:
        """删除解压的源代码、源代码包和工作目录"""
        common.remove_if_exists(self.source_dir)
        common.remove_if_exists(self.archive_path)
        common.remove_if_exists(self.work_dir)

    def build(self) -> None:
        """构建binutils，任何一步失败都会抛出异常，无论成功与否都会清理工作目录"""
        print(f"[clanger] Compiling binutils {self.version} for {self.target}")
        try:
            self.download()
            self.extract()
            self.configure()
            self.make()
            self.install()
        finally:
            self.clean()


assert __name__ != "__main__", "Import this file instead of running it directly."
