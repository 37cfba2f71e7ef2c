import argparse
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import gdbus_static_gen as gsg  # noqa: E402

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def example_xml_path() -> Path:
    return FIXTURES_DIR / "example.xml"


@pytest.fixture
def write_xml(tmp_path: Path) -> Callable[[str], Path]:
    def _write_xml(text: str, name: str = "introspection.xml") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write_xml


@pytest.fixture
def make_args(tmp_path: Path) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "input": tmp_path / "introspection.xml",
            "output": None,
            "prefix": gsg.DEFAULT_IDENTIFIER_PREFIX,
            "indent": gsg.DEFAULT_INDENT_UNIT,
            "no_annotations": False,
            "max_annotation_depth": gsg.DEFAULT_MAX_ANNOTATION_DEPTH,
            "verbose": False,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


@pytest.fixture
def make_emitter() -> Callable[..., gsg.DeclarationEmitter]:
    def _make_emitter(**overrides: object) -> gsg.DeclarationEmitter:
        return gsg.DeclarationEmitter(config=gsg.GeneratorConfig(**overrides))

    return _make_emitter


@pytest.fixture
def calculator_document() -> gsg.IntrospectionDocument:
    """In-memory equivalent of the org.example.Calculator fixture interface."""
    emits_changed = gsg.AnnotationInfo(
        key="org.freedesktop.DBus.Property.EmitsChangedSignal",
        value="true",
        annotations=(gsg.AnnotationInfo("org.example.Reason", "cached"),),
    )
    calculator = gsg.InterfaceInfo(
        name="org.example.Calculator",
        methods=(
            gsg.MethodInfo(
                name="Add",
                in_args=(gsg.ArgInfo("a", "i"), gsg.ArgInfo("b", "i")),
                out_args=(gsg.ArgInfo("sum", "i"),),
            ),
            gsg.MethodInfo(
                name="Reset",
                annotations=(
                    gsg.AnnotationInfo("org.freedesktop.DBus.Method.NoReply", "true"),
                ),
            ),
        ),
        signals=(
            gsg.SignalInfo(
                name="Overflowed",
                args=(
                    gsg.ArgInfo(
                        "value",
                        "x",
                        annotations=(gsg.AnnotationInfo("org.example.Unit", "count"),),
                    ),
                ),
            ),
        ),
        properties=(
            gsg.PropertyInfo("Precision", "u", readable=True, writable=True),
            gsg.PropertyInfo(
                "LastResult", "i", readable=True, annotations=(emits_changed,)
            ),
        ),
        annotations=(
            gsg.AnnotationInfo("org.freedesktop.DBus.Deprecated", "false"),
        ),
    )
    return gsg.IntrospectionDocument(
        interfaces=(calculator, gsg.InterfaceInfo(name="org.example.Empty"))
    )
