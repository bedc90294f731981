import os
import enum
import typing
import argparse
import packaging.version as version
import common

default_clang_version = "20.1.1"
default_binutils_version = "2.43.1"
# 只影响binutils的构建，clang是通用的，支持llvm_targets中架构对应的所有平台
default_target_list = ("arm-none-eabihf", "arm-linux-gnueabihf", "aarch64-linux-gnu")
default_llvm_target_list = ("ARM", "AArch64")
default_prefix_dir = "/opt/tools"


class failure_policy(enum.StrEnum):
    """某个目标构建失败后的处理策略"""

    abort = "abort-on-first-failure"  # 立即终止，不再构建后续目标
    isolate = "isolate-per-target"  # 记录失败并继续构建其他目标


def split_target_list(target_list: typing.Iterable[str]) -> list[str]:
    """展开以空格分隔的目标平台列表，保持顺序并保留重复项

    Args:
        target_list (Iterable[str]): 目标平台列表，每一项都可以包含多个以空格分隔的平台

    Returns:
        list[str]: 展开后的目标平台列表
    """
    return [target for item in target_list for target in item.split()]


class build_parameter(typing.NamedTuple):
    """一次构建所用的不可变参数"""

    clang_version: str
    binutils_version: str
    targets: tuple[str, ...]
    llvm_targets: tuple[str, ...]
    work_dir: str
    prefix_dir: str
    jobs: int
    policy: failure_policy
    system: bool
    strict_backend: bool

    @property
    def clang_prefix(self) -> str:
        return os.path.join(self.prefix_dir, "clang")

    def get_binutils_prefix(self, target: str) -> str:
        """获取目标平台对应的binutils安装目录

        Args:
            target (str): 目标平台

        Returns:
            str: 安装目录
        """
        return os.path.join(self.prefix_dir, "binutils", target)


class configure(common.basic_configure):
    clang_version: str  # clang版本号
    binutils_version: str  # binutils版本号
    targets: list[str]  # 需要构建binutils的目标平台
    llvm_targets: list[str]  # clang启用的llvm后端
    prefix_dir: str  # 工具链安装根目录
    jobs: int  # 并发数
    policy: str  # 目标构建失败后的处理策略
    system: bool  # 是否安装系统包
    strict_backend: bool  # 目标平台没有对应的llvm后端时是否报错

    def __init__(
        self,
        clang_version: str = default_clang_version,
        binutils_version: str = default_binutils_version,
        targets: list[str] | None = None,
        llvm_targets: list[str] | None = None,
        work_dir: str = "/tmp",
        prefix_dir: str = default_prefix_dir,
        jobs: int = common.get_default_jobs(),
        policy: str = failure_policy.abort,
        system: bool = True,
        strict_backend: bool = False,
    ) -> None:
        super().__init__(work_dir)
        self.clang_version = clang_version
        self.binutils_version = binutils_version
        # 空列表表示不构建任何binutils，只有None才使用默认列表
        self.targets = split_target_list(default_target_list if targets is None else targets)
        self.llvm_targets = split_target_list(default_llvm_target_list if llvm_targets is None else llvm_targets)
        self.prefix_dir = os.path.abspath(prefix_dir)
        self.jobs = jobs
        self.policy = str(policy)
        self.system = system
        self.strict_backend = strict_backend

    @staticmethod
    def add_argument(parser: argparse.ArgumentParser) -> None:
        """添加所有构建选项

        Args:
            parser (argparse.ArgumentParser): 命令行解析器
        """
        common.basic_configure.add_argument(parser)
        parser.add_argument("--clang", dest="clang_version", type=str, help="The version of clang to build.", default=default_clang_version)
        parser.add_argument(
            "--binutils", dest="binutils_version", type=str, help="The version of binutils to build.", default=default_binutils_version
        )
        parser.add_argument(
            "--targets",
            nargs="*",
            type=str,
            help="Target triplets to build binutils for. Use without any triplet to skip building binutils.",
            default=list(default_target_list),
        )
        parser.add_argument(
            "--llvm-targets",
            dest="llvm_targets",
            nargs="+",
            type=str,
            help="LLVM backends enabled in the universal clang.",
            default=list(default_llvm_target_list),
        )
        parser.add_argument("--prefix-dir", type=str, help="The dir contains all the prefix dir.", default=default_prefix_dir)
        parser.add_argument(
            "--jobs",
            type=int,
            help="Number of concurrent jobs at build time. Use the number of logical processors by default.",
            default=common.get_default_jobs(),
        )
        parser.add_argument(
            "--policy",
            type=str,
            help="What to do when building binutils for a target failed.",
            default=failure_policy.abort,
            choices=[*failure_policy],
        )
        parser.add_argument(
            "--system",
            action=argparse.BooleanOptionalAction,
            help="Whether to install system packages with apt-get. Only check host tools if disabled.",
            default=True,
        )
        parser.add_argument(
            "--strict-backend",
            dest="strict_backend",
            action=argparse.BooleanOptionalAction,
            help="Fail instead of warning when a target has no LLVM backend enabled.",
            default=False,
        )

    def check(self) -> None:
        common._check_work_dir(self.work_dir)
        for name, version_str in (("clang", self.clang_version), ("binutils", self.binutils_version)):
            try:
                version.Version(version_str)
            except version.InvalidVersion:
                assert False, f"Invalid {name} version: {version_str}."
        assert self.jobs > 0, f"Invalid jobs: {self.jobs}."
        assert self.policy in [*failure_policy], f"Invalid policy: {self.policy}."
        assert self.llvm_targets, "At least one LLVM backend should be enabled."
        for target in self.targets:
            common.check_triplet(target)

    def freeze(self) -> build_parameter:
        """生成不可变的构建参数

        Returns:
            build_parameter: 构建参数
        """
        return build_parameter(
            clang_version=self.clang_version,
            binutils_version=self.binutils_version,
            targets=tuple(split_target_list(self.targets)),
            llvm_targets=tuple(split_target_list(self.llvm_targets)),
            work_dir=self.work_dir,
            prefix_dir=self.prefix_dir,
            jobs=self.jobs,
            policy=failure_policy(self.policy),
            system=self.system,
            strict_backend=self.strict_backend,
        )


assert __name__ != "__main__", "Import this file instead of running it directly."
