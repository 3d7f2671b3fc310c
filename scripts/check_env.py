#!/usr/bin/env python3
"""一键环境检查脚本：校验禁忌搜索着色项目的依赖并输出简要运行建议。"""

import importlib
import platform
import sys
from typing import List, Tuple

DEPENDENCIES: List[Tuple[str, str, bool]] = [
    ("numpy", "numpy", True),
    ("networkx", "networkx", True),
    ("matplotlib", "matplotlib", False),
    ("pytest", "pytest", False),
]


def get_version(module) -> str:
    for attr in ("__version__", "VERSION"):
        if hasattr(module, attr):
            value = getattr(module, attr)
            if isinstance(value, str):
                return value
            if isinstance(value, tuple):
                return ".".join(str(v) for v in value)
    return "unknown"


def check(dependencies=DEPENDENCIES) -> List[Tuple[str, str, bool]]:
    """返回缺失依赖列表 (pip 名称, 原因, 是否必需)"""
    failed = []
    for module_name, pip_name, required in dependencies:
        try:
            module = importlib.import_module(module_name)
            print(f"[OK] {pip_name:<15} version={get_version(module)}")
        except ImportError as exc:
            failed.append((pip_name, str(exc), required))
            tag = "MISSING" if required else "OPTIONAL"
            print(f"[{tag}] {pip_name:<15} reason={exc}")
    return failed


def main() -> int:
    print("=== 禁忌搜索图着色 环境检查 ===")
    print(f"Python: {sys.version.split()[0]}")
    print(f"Platform: {platform.platform()}")

    failed = check()
    missing_required = [item for item in failed if item[2]]

    if failed:
        print("\n缺失列表：")
        for pip_name, reason, required in failed:
            print(f"  - {pip_name}{'' if required else '（可选）'}: {reason}")
        print("建议执行：")
        print("  pip install -e .[plot,test]")

    if missing_required:
        print("\n环境检查结果：存在缺失依赖。")
        return 1

    print("\n环境检查结果：通过 ✅")
    print("你可以继续运行：")
    print("  python runner.py test_graph.col -K 3 --tabu-iters 5000 --tenure reactive:10,0.6,1000")
    print("  pytest")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
