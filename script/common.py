import functools
import os
import psutil
import shutil
import json
import argparse
import inspect
import itertools
import re
import subprocess
import packaging.version as version
from collections.abc import Callable
from typing import ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")


class command_dry_run:
    """是否只显示命令而不实际执行"""

    _dry_run: bool = False

    @classmethod
    def get(cls) -> bool:
        return cls._dry_run

    @classmethod
    def set(cls, dry_run: bool) -> None:
        cls._dry_run = dry_run


def _support_dry_run(echo_fn: Callable[..., str | None] | None = None) -> Callable[[Callable[P, R]], Callable[P, R | None]]:
    """根据dry_run参数和command_dry_run中的全局状态确定是否只回显命令而不执行，若fn没有dry_run参数则只会使用全局状态

    Args:
        echo_fn (Callable[..., str | None] | None, optional): 回调函数，返回要显示的命令字符串或None，无回调或返回None时不显示命令，所有参数需要能在主函数的参数列表中找到，默认为无回调.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R | None]:
        signature = inspect.signature(fn)

        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R | None:
            bound_args = signature.bind(*args, **kwargs)
            bound_args.apply_defaults()
            if echo_fn:
                param_list: list = []
                for key in inspect.signature(echo_fn).parameters.keys():
                    assert (
                        key in bound_args.arguments
                    ), f"The param {key} of echo_fn is not in the param list of fn. Every param of echo_fn should be able to find in the param list of fn."
                    param_list.append(bound_args.arguments[key])
                echo = echo_fn(*param_list)
                if echo is not None:
                    print(echo)
            dry_run: bool | None = bound_args.arguments.get("dry_run")
            assert isinstance(dry_run, bool | None), f"The param dry_run must be a bool or None."
            if dry_run is None and command_dry_run.get() or dry_run:
                return
            return fn(*bound_args.args, **bound_args.kwargs)

        return wrapper

    return decorator


@_support_dry_run(lambda command, echo: f"[clanger] Run command: {command}" if echo else None)
def run_command(
    command: str,
    ignore_error: bool = False,
    capture: bool = False,
    echo: bool = True,
    cwd: str | None = None,
    dry_run: bool | None = None,
) -> subprocess.CompletedProcess[str] | None:
    """运行指定命令, 若不忽略错误, 则在命令执行出错时抛出RuntimeError, 反之打印错误码

    Args:
        command (str): 要运行的命令
        ignore_error (bool, optional): 是否忽略错误. 默认不忽略错误.
        capture (bool, optional): 是否捕获命令输出，默认为不捕获，此时工具自身的错误信息会原样输出到终端.
        echo (bool, optional): 是否回显信息，设置为False将不回显任何信息，包括错误提示，默认为回显.
        cwd (str | None, optional): 运行命令时的工作目录，默认为当前目录.
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.

    Raises:
        RuntimeError: 命令执行失败且ignore_error为False时抛出异常

    Returns:
        None | subprocess.CompletedProcess[str]: 在命令正常执行结束后返回执行结果，否则返回None
    """

    if capture:
        pipe = subprocess.PIPE  # capture为True，不论是否回显都需要捕获输出
    elif echo:
        pipe = None  # 回显而不捕获输出则正常输出
    else:
        pipe = subprocess.DEVNULL  # 不回显又不捕获输出则丢弃输出
    try:
        result = subprocess.run(command, stdout=pipe, stderr=pipe, shell=True, check=True, text=True, cwd=cwd)
    except subprocess.CalledProcessError as e:
        if not ignore_error:
            raise RuntimeError(f'Command "{command}" failed.')
        elif echo:
            print(f'[clanger] Command "{command}" failed with errno={e.returncode}, but it is ignored.')
        return None
    return result


@_support_dry_run(lambda path: f"[clanger] Create directory {path}.")
def mkdir(path: str, remove_if_exist=True, dry_run: bool | None = None) -> None:
    """创建目录

    Args:
        path (str): 要创建的目录
        remove_if_exist (bool, optional): 是否先删除已存在的同名目录. 默认先删除已存在的同名目录.
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if remove_if_exist and os.path.exists(path):
        shutil.rmtree(path)
    os.makedirs(path, exist_ok=True)


@_support_dry_run(lambda path: f"[clanger] Remove {path}.")
def remove(path: str, dry_run: bool | None = None) -> None:
    """删除指定路径

    Args:
        path (str): 要删除的路径
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


@_support_dry_run(lambda path: f"[clanger] Remove {path} if path exists.")
def remove_if_exists(path: str, dry_run: bool | None = None) -> None:
    """如果指定路径存在则删除指定路径

    Args:
        path (str): 要删除的路径
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if os.path.lexists(path):
        remove(path)


@_support_dry_run(lambda dir, version_str: f"[clanger] Save version {version_str} to {dir}.")
def save_version(dir: str, version_str: str, dry_run: bool | None = None) -> None:
    """将版本信息保存到dir/.version文件中

    Args:
        dir (str): 要保存版本信息文件的目录，通常为安装目录
        version_str (str): 版本号
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    with open(os.path.join(dir, ".version"), "w") as file:
        file.write(version_str)


def check_version(dir: str, version_str: str) -> int:
    """检查已安装的版本

    Args:
        dir (str): 安装目录
        version_str (str): 期望的版本号

    Returns:
        int: 三路比较结果，1为已安装更新版本，0为版本一致，-1为未安装或需要更新
    """
    try:
        with open(os.path.join(dir, ".version")) as file:
            current_version = version.Version(file.readline().strip())
    except (OSError, version.InvalidVersion):
        return -1
    target_version = version.Version(version_str)
    if current_version > target_version:
        return 1
    elif current_version == target_version:
        return 0
    else:
        return -1


def get_default_jobs() -> int:
    """获取默认并发数，即逻辑处理器数

    Returns:
        int: 并发数
    """
    return psutil.cpu_count(logical=True) or 1


def get_free_space_MB(path: str) -> int:
    """获取path所在文件系统的剩余空间

    Args:
        path (str): 要查询的路径

    Returns:
        int: 剩余空间，单位为MiB
    """
    return psutil.disk_usage(path).free // 1048576


class triplet_field:
    """平台名称各个域的内容"""

    arch: str  # 架构
    os: str  # 操作系统
    vendor: str  # 制造商
    abi: str  # abi/libc
    num: int  # 非unknown的字段数

    def __init__(self, triplet: str, normalize: bool = True) -> None:
        """解析平台名称

        Args:
            triplet (str): 输入平台名称
            normalize (bool, optional): 是否将os字段中的none正则化为unknown. 默认正则化.
        """
        field = triplet.split("-")
        assert all(field), f'Illegal triplet "{triplet}"'
        self.arch = field[0]
        self.num = len(field)
        match (self.num):
            case 2:
                self.os = "unknown"
                self.vendor = "unknown"
                self.abi = field[1]
            case 3:
                self.os = field[1]
                self.vendor = "unknown"
                self.abi = field[2]
            case 4:
                self.os = field[1]
                self.vendor = field[2]
                self.abi = field[3]
            case _:
                assert False, f'Illegal triplet "{triplet}"'

        # 正则化
        if normalize:
            if self.os == "none":
                self.os = "unknown"


def check_triplet(triplet: str) -> None:
    """检查triplet能否安全地作为安装目录名

    Args:
        triplet (str): 目标平台
    """
    # triplet会出现在shell命令和安装路径中，只允许字母、数字、下划线、点和连字符
    assert re.fullmatch(r"[A-Za-z0-9_.-]+", triplet) and triplet not in (".", ".."), f'Illegal triplet "{triplet}"'
    triplet_field(triplet)


def _check_work_dir(work_dir: str) -> None:
    assert os.path.isdir(work_dir), f'The work dir "{work_dir}" does not exist.'


class basic_configure:
    work_dir: str  # 下载与构建源代码时的工作目录

    def __init__(self, work_dir: str = "/tmp") -> None:
        self.work_dir = os.path.abspath(work_dir)

    @staticmethod
    def add_argument(parser: argparse.ArgumentParser) -> None:
        """为argparse添加--work-dir、--export、--import和--dry-run选项

        Args:
            parser (argparse.ArgumentParser): 命令行解析器
        """
        parser.add_argument("--work-dir", dest="work_dir", type=str, help="The directory to download and build source trees in.", default="/tmp")
        parser.add_argument("--export", dest="export_file", type=str, help="Export settings to specific file.")
        parser.add_argument("--import", dest="import_file", type=str, help="Import settings from specific file.")
        parser.add_argument(
            "--dry-run",
            dest="dry_run",
            action=argparse.BooleanOptionalAction,
            help="Preview the commands without actually executing them.",
            default=False,
        )

    @classmethod
    def parse_args(cls, args: argparse.Namespace):
        command_dry_run.set(args.dry_run)
        args_list = vars(args)
        parma_list: list = []
        for parma in itertools.islice(inspect.signature(cls.__init__).parameters.keys(), 1, None):
            assert parma in args_list, f"The parma {parma} is not in args. Every parma except self should be able to find in args."
            parma_list.append(args_list[parma])
        return cls(*parma_list)

    def save_config(self, args: argparse.Namespace) -> None:
        """将配置保存到文件，使用json格式

        Args:
            args (argparse.Namespace): 用户输入参数

        Raises:
            RuntimeError: 保存失败抛出异常
        """
        export_file: str | None = args.export_file
        if export_file:
            try:
                with open(export_file, "w") as file:
                    json.dump(vars(self), file, indent=4)
                print(f'[clanger] Settings have been written to file "{export_file}"')
            except (OSError, TypeError) as e:
                raise RuntimeError(f"Export settings failed: {e}")

    @staticmethod
    def get_explicit_args(parser: argparse.ArgumentParser, argv: list[str] | None = None) -> set[str]:
        """获取用户在命令行中显式指定的选项，即使其值与默认值相同

        Args:
            parser (argparse.ArgumentParser): 命令行解析器
            argv (list[str] | None, optional): 命令行参数，默认为sys.argv[1:].

        Returns:
            set[str]: 显式指定的选项的dest
        """
        unset = object()
        # namespace中已存在的属性不会被默认值覆盖，只有显式指定的选项会被重新赋值
        namespace = argparse.Namespace(**{key: unset for key in vars(parser.parse_args(argv))})
        parser.parse_args(argv, namespace=namespace)
        return {key for key, value in vars(namespace).items() if value is not unset}

    def load_config(self, args: argparse.Namespace, explicit_args: set[str]) -> None:
        """从配置文件中加载配置，然后合并加载的配置和用户输入的配置，显式指定的命令行选项优先

        Args:
            args (argparse.Namespace): 用户输入参数
            explicit_args (set[str]): 显式指定的选项，由get_explicit_args获取

        Raises:
            RuntimeError: 加载失败抛出异常
        """
        import_file: str | None = args.import_file
        if import_file:
            try:
                with open(import_file) as file:
                    import_config_list = json.load(file)
            except (OSError, json.JSONDecodeError) as e:
                raise RuntimeError(f'Import file "{import_file}" failed: {e}')
            if not isinstance(import_config_list, dict):
                raise RuntimeError(f'Invalid configure file "{import_file}".')
            self.__dict__ = {
                # 若import_config中没有则保留当前值，以便在配置类更新后原配置文件可以正确加载
                key: (value if key in explicit_args else import_config_list.get(key, value))
                for key, value in vars(self).items()
            }


assert __name__ != "__main__", "Import this file instead of running it directly."
