import importlib
import sys
from pathlib import Path

SRC_DIR = str(Path(__file__).resolve().parents[2] / "src")


def _import_with_lambda_layout(module_name: str):
    # Lambda bundles handlers/ and utils/ at the root of the deployment package
    saved = {
        name: sys.modules.pop(name)
        for name in list(sys.modules)
        if name.split(".")[0] in ("utils", "handlers")
    }
    sys.path.insert(0, SRC_DIR)
    try:
        return importlib.import_module(module_name)
    finally:
        sys.path.remove(SRC_DIR)
        for name in list(sys.modules):
            if name.split(".")[0] in ("utils", "handlers"):
                del sys.modules[name]
        sys.modules.update(saved)


def test_handler_uses_absolute_utils_imports():
    module = _import_with_lambda_layout("handlers.spa_deployment")

    assert hasattr(module, "lambda_handler")
    assert module.DeadlineGuard.__module__ == "utils.deadline"


def test_spa_build_uses_absolute_imports():
    module = _import_with_lambda_layout("utils.spa_build")

    assert module.BuildError.__module__ == "utils.errors"
