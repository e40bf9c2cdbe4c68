import os

import pytest

tomllib = pytest.importorskip("tomllib")

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def _setuptools_config():
    with open(os.path.join(ROOT, "pyproject.toml"), "rb") as fh:
        return tomllib.load(fh)["tool"]["setuptools"]


def test_every_source_folder_is_installed():
    packages = set(_setuptools_config()["packages"])
    # routes/ has no __init__.py, so package discovery alone would miss it
    assert {"utils", "routes"} <= packages
    for name in packages:
        assert os.path.isdir(os.path.join(ROOT, name))


def test_every_root_module_is_installed():
    modules = set(_setuptools_config()["py-modules"])
    on_disk = {f[:-3] for f in os.listdir(ROOT) if f.endswith(".py")}
    assert on_disk <= modules


def test_blueprint_modules_import():
    from routes.report_routes import reports_bp
    from routes.student_portal import student_portal_bp

    assert reports_bp.url_prefix == "/admin/reports"
    assert student_portal_bp.url_prefix == "/portal"
