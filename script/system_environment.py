import shutil
import typing
import common

# 安装后的用途：
# git, curl, wget: 获取源代码
# cmake, ninja-build: 构建clang
# nano, python3: 编辑和运行脚本
# xz-utils: 解压binutils
# pkg-config: 查找库
# g++: 构建clang和binutils
system_package_list: typing.Final[list[str]] = [
    "cmake",
    "curl",
    "g++",
    "git",
    "nano",
    "ninja-build",
    "pkg-config",
    "python3",
    "wget",
    "xz-utils",
]

# 构建过程中实际调用的宿主工具
host_tool_list: typing.Final[list[str]] = ["git", "cmake", "ninja", "g++", "make", "wget", "tar", "xz"]

apt_list_dir = "/var/lib/apt/lists"


def install_system_packages(package_list: typing.Iterable[str] = system_package_list) -> None:
    """使用apt-get安装系统包，任何一步失败都会抛出异常

    Args:
        package_list (Iterable[str], optional): 要安装的包. 默认为system_package_list.
    """
    packages = " ".join(package_list)
    common.run_command("apt-get update")
    common.run_command(f"apt-get install -y {packages}")
    # 清理apt缓存以减小镜像体积
    common.run_command(f"rm -rf {apt_list_dir}/*")


def get_missing_tools(tool_list: typing.Iterable[str] = host_tool_list) -> list[str]:
    """获取PATH中找不到的工具

    Args:
        tool_list (Iterable[str], optional): 要查找的工具. 默认为host_tool_list.

    Returns:
        list[str]: 缺失的工具列表
    """
    return [tool for tool in tool_list if shutil.which(tool) is None]


def check_host_tools(tool_list: typing.Iterable[str] = host_tool_list) -> None:
    """检查宿主工具是否齐全，用于跳过系统包安装的情况

    Args:
        tool_list (Iterable[str], optional): 要检查的工具. 默认为host_tool_list.

    Raises:
        RuntimeError: 存在缺失的工具时抛出异常
    """
    if common.command_dry_run.get():
        return
    missing_list = get_missing_tools(tool_list)
    if missing_list:
        raise RuntimeError(f"Cannot find host tools: {' '.join(missing_list)}.")
    print("[clanger] All host tools are available.")


assert __name__ != "__main__", "Import this file instead of running it directly."
