"""Static GDBus introspection data generator.

Reads a D-Bus introspection XML document and prints equivalent static
GDBusInterfaceInfo C declarations, so a program can compile its
introspection data in instead of parsing XML at runtime.

Usage:
    python gdbus_static_gen.py org.example.Foo.xml > foo-introspection.c
"""

import argparse
import string
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import NoReturn

# ===--- Exit codes ---=== #

EXIT_USAGE = 1
EXIT_READ_ERROR = 2
EXIT_PARSE_ERROR = 3
EXIT_GENERATION_ERROR = 4
EXIT_WRITE_ERROR = 5


# ===--- CLI config contracts ---=== #

DEFAULT_IDENTIFIER_PREFIX = "_"
DEFAULT_INDENT_UNIT = "\t"
DEFAULT_MAX_ANNOTATION_DEPTH = 64


@dataclass(frozen=True)
class GeneratorConfig:
    """Options threaded through every emitter of one generation pass.

    Attributes:
        identifier_prefix: Prepended to every generated C identifier.
        indent_unit: String used for one nesting level inside initializers.
        emit_annotations: When False, every annotation reference collapses to
            NULL and no annotation declarations are emitted.
        max_annotation_depth: Deepest annotation nesting accepted before the
            pass fails with MalformedInputError.
    """

    identifier_prefix: str = DEFAULT_IDENTIFIER_PREFIX
    indent_unit: str = DEFAULT_INDENT_UNIT
    emit_annotations: bool = True
    max_annotation_depth: int = DEFAULT_MAX_ANNOTATION_DEPTH


@dataclass(frozen=True)
class RunConfig:
    input_path: Path
    output_path: Path | None
    generator: GeneratorConfig
    verbose: bool = False


VALID_ERROR_CODES = {
    "MISSING_INPUT",
    "INVALID_PREFIX",
    "INVALID_INDENT",
    "INVALID_DEPTH",
}


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


class _UsageArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with EXIT_USAGE.

    argparse exits with status 2 by default, which this tool reserves for
    an unreadable input document.
    """

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def build_argument_parser() -> argparse.ArgumentParser:
    parser = _UsageArgumentParser(
        prog="gdbus-static-gen",
        description="Generate static GDBus introspection data from D-Bus XML",
    )

    parser.add_argument("input", type=Path, nargs="?", default=None)
    parser.add_argument("-o", "--output", type=Path, default=None)
    parser.add_argument("--prefix", type=str, default=DEFAULT_IDENTIFIER_PREFIX)
    parser.add_argument("--indent", type=str, default=DEFAULT_INDENT_UNIT)
    parser.add_argument("--no-annotations", action="store_true", default=False)
    parser.add_argument(
        "--max-annotation-depth", type=int, default=DEFAULT_MAX_ANNOTATION_DEPTH
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=False)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def validate_prefix(raw: str) -> str:
    if raw == "" or (raw[0] not in string.digits and _is_identifier_text(raw)):
        return raw
    raise ConfigError(
        "INVALID_PREFIX",
        f"Invalid identifier prefix: {raw!r}",
        "The prefix must be empty or a C identifier such as '_' or 'my_'.",
    )


def validate_indent(raw: str) -> str:
    indent = raw.replace("\\t", "\t")
    if indent and indent.isspace():
        return indent
    raise ConfigError(
        "INVALID_INDENT",
        f"Invalid indentation unit: {raw!r}",
        "Use spaces or tabs only, for example --indent '    ' or --indent '\\t'.",
    )


def validate_depth(raw: int) -> int:
    if raw > 0:
        return raw
    raise ConfigError(
        "INVALID_DEPTH",
        f"Invalid maximum annotation depth: {raw}",
        "Pass a positive integer to --max-annotation-depth.",
    )


def validate_config(args: argparse.Namespace) -> RunConfig:
    if args.input is None:
        raise ConfigError(
            "MISSING_INPUT",
            "Please provide a file for parameter 1",
            "Pass the introspection document path: gdbus-static-gen foo.xml",
        )

    generator = GeneratorConfig(
        identifier_prefix=validate_prefix(args.prefix),
        indent_unit=validate_indent(args.indent),
        emit_annotations=not args.no_annotations,
        max_annotation_depth=validate_depth(args.max_annotation_depth),
    )
    return RunConfig(
        input_path=args.input,
        output_path=args.output,
        generator=generator,
        verbose=bool(args.verbose),
    )


def build_config(argv: list[str] | None = None) -> RunConfig:
    return validate_config(parse_args(argv))


# ===--- Errors ---=== #


class InputReadError(Exception):
    """The introspection document could not be read."""


class IntrospectionParseError(Exception):
    """The introspection document is not a valid D-Bus introspection tree."""


class GenerationError(Exception):
    """The generation pass could not produce consistent declarations."""


class IdentifierCollisionError(GenerationError):
    def __init__(self, identifier: str):
        super().__init__(
            f"Generated identifier '{identifier}' is already used by another "
            f"node; two sibling names normalize to the same fragment"
        )
        self.identifier = identifier


class MalformedInputError(GenerationError):
    pass


# ===--- Introspection tree ---=== #


@dataclass(frozen=True)
class AnnotationInfo:
    key: str
    value: str
    annotations: tuple["AnnotationInfo", ...] = ()


@dataclass(frozen=True)
class ArgInfo:
    name: str
    signature: str
    annotations: tuple[AnnotationInfo, ...] = ()


@dataclass(frozen=True)
class MethodInfo:
    name: str
    in_args: tuple[ArgInfo, ...] = ()
    out_args: tuple[ArgInfo, ...] = ()
    annotations: tuple[AnnotationInfo, ...] = ()


@dataclass(frozen=True)
class SignalInfo:
    name: str
    args: tuple[ArgInfo, ...] = ()
    annotations: tuple[AnnotationInfo, ...] = ()


@dataclass(frozen=True)
class PropertyInfo:
    name: str
    signature: str
    readable: bool = False
    writable: bool = False
    annotations: tuple[AnnotationInfo, ...] = ()


@dataclass(frozen=True)
class InterfaceInfo:
    name: str
    methods: tuple[MethodInfo, ...] = ()
    signals: tuple[SignalInfo, ...] = ()
    properties: tuple[PropertyInfo, ...] = ()
    annotations: tuple[AnnotationInfo, ...] = ()


@dataclass(frozen=True)
class IntrospectionDocument:
    interfaces: tuple[InterfaceInfo, ...] = ()


# ===--- XML parsing ---=== #

_PROPERTY_ACCESS = {
    "read": (True, False),
    "write": (False, True),
    "readwrite": (True, True),
}


def _required_attr(element: ET.Element, name: str) -> str:
    value = element.get(name)
    if value is None or (name == "name" and value == ""):
        raise IntrospectionParseError(
            f"<{element.tag}> element is missing required attribute '{name}'"
        )
    return value


def parse_annotation(
    element: ET.Element,
    depth: int = 0,
    max_depth: int = DEFAULT_MAX_ANNOTATION_DEPTH,
) -> AnnotationInfo:
    key = _required_attr(element, "name")
    if depth >= max_depth:
        raise MalformedInputError(
            f"Annotation '{key}' is nested deeper than {max_depth} levels"
        )
    return AnnotationInfo(
        key=key,
        value=_required_attr(element, "value"),
        annotations=parse_annotations(element, depth + 1, max_depth),
    )


def parse_annotations(
    parent: ET.Element,
    depth: int = 0,
    max_depth: int = DEFAULT_MAX_ANNOTATION_DEPTH,
) -> tuple[AnnotationInfo, ...]:
    return tuple(
        parse_annotation(el, depth, max_depth) for el in parent.findall("annotation")
    )


def parse_arg(element: ET.Element, index: int, max_depth: int) -> ArgInfo:
    # GLib names an unnamed <arg> after its position among all <arg> siblings.
    name = element.get("name") or f"arg_{index}"
    return ArgInfo(
        name=name,
        signature=_required_attr(element, "type"),
        annotations=parse_annotations(element, max_depth=max_depth),
    )


def parse_method(element: ET.Element, max_depth: int) -> MethodInfo:
    name = _required_attr(element, "name")
    in_args: list[ArgInfo] = []
    out_args: list[ArgInfo] = []
    for index, arg in enumerate(element.findall("arg")):
        direction = arg.get("direction", "in")
        if direction == "in":
            in_args.append(parse_arg(arg, index, max_depth))
        elif direction == "out":
            out_args.append(parse_arg(arg, index, max_depth))
        else:
            raise IntrospectionParseError(
                f"Method '{name}' has an argument with unknown direction "
                f"'{direction}' (expected 'in' or 'out')"
            )
    return MethodInfo(
        name=name,
        in_args=tuple(in_args),
        out_args=tuple(out_args),
        annotations=parse_annotations(element, max_depth=max_depth),
    )


def parse_signal(element: ET.Element, max_depth: int) -> SignalInfo:
    name = _required_attr(element, "name")
    args: list[ArgInfo] = []
    for index, arg in enumerate(element.findall("arg")):
        direction = arg.get("direction", "out")
        if direction != "out":
            raise IntrospectionParseError(
                f"Signal '{name}' has an argument with direction '{direction}' "
                f"(signal arguments are always 'out')"
            )
        args.append(parse_arg(arg, index, max_depth))
    return SignalInfo(
        name=name,
        args=tuple(args),
        annotations=parse_annotations(element, max_depth=max_depth),
    )


def parse_property(element: ET.Element, max_depth: int) -> PropertyInfo:
    name = _required_attr(element, "name")
    access = _required_attr(element, "access")
    if access not in _PROPERTY_ACCESS:
        raise IntrospectionParseError(
            f"Property '{name}' has unknown access '{access}' "
            f"(expected one of: read, write, readwrite)"
        )
    readable, writable = _PROPERTY_ACCESS[access]
    return PropertyInfo(
        name=name,
        signature=_required_attr(element, "type"),
        readable=readable,
        writable=writable,
        annotations=parse_annotations(element, max_depth=max_depth),
    )


def parse_interface(element: ET.Element, max_depth: int) -> InterfaceInfo:
    return InterfaceInfo(
        name=_required_attr(element, "name"),
        methods=tuple(parse_method(el, max_depth) for el in element.findall("method")),
        signals=tuple(parse_signal(el, max_depth) for el in element.findall("signal")),
        properties=tuple(
            parse_property(el, max_depth) for el in element.findall("property")
        ),
        annotations=parse_annotations(element, max_depth=max_depth),
    )


def parse_introspection(
    data: str | bytes, max_annotation_depth: int = DEFAULT_MAX_ANNOTATION_DEPTH
) -> IntrospectionDocument:
    """Parse introspection XML into an IntrospectionDocument.

    Only the interfaces of the root <node> are read; child <node> elements
    and unknown elements such as <doc:doc> are ignored.

    Raises:
        IntrospectionParseError: Malformed XML (including empty or non-UTF-8
            input), a root element other than <node>, a missing required
            attribute, or an unknown argument direction / property access
            value.
        MalformedInputError: Annotations nested deeper than
            max_annotation_depth.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as err:
        raise IntrospectionParseError(f"Malformed XML: {err}") from err

    if root.tag != "node":
        raise IntrospectionParseError(
            f"Expected <node> as the root element, got <{root.tag}>"
        )
    try:
        interfaces = tuple(
            parse_interface(el, max_annotation_depth)
            for el in root.findall("interface")
        )
    except RecursionError as err:
        raise MalformedInputError(
            "Annotation nesting exceeds the interpreter recursion limit"
        ) from err
    return IntrospectionDocument(interfaces=interfaces)


def load_introspection(
    path: Path, max_annotation_depth: int = DEFAULT_MAX_ANNOTATION_DEPTH
) -> IntrospectionDocument:
    """Read and parse an introspection document from disk.

    Raises:
        InputReadError: The file cannot be read.
        IntrospectionParseError: Propagated from parse_introspection.
        MalformedInputError: Propagated from parse_introspection.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as err:
        raise InputReadError(f"Read error: {err}") from err
    return parse_introspection(data, max_annotation_depth)


# ===--- Identifier normalizer ---=== #

_IDENTIFIER_FRAGMENT = str.maketrans(
    string.ascii_uppercase + ".", string.ascii_lowercase + "_"
)
_IDENTIFIER_CHARS = frozenset(string.ascii_letters + string.digits + "_")


def normalize_identifier(name: str) -> str:
    """Lowercase ASCII letters and turn '.' into '_'.

    Any other character is passed through unchanged.
    """
    return name.translate(_IDENTIFIER_FRAGMENT)


def _is_identifier_text(text: str) -> bool:
    return all(ch in _IDENTIFIER_CHARS for ch in text)


# ===--- C rendering helpers ---=== #

NULL_SENTINEL = "NULL"
STATIC_REF_COUNT = "-1"

PREAMBLE_LINES: tuple[str, ...] = (
    "#include <glib.h>",
    "#include <gio/gio.h>",
)
BEGIN_BANNER = "/* Introspection data begins */"
END_BANNER = "/* Introspection data ends */"

ACCESS_READWRITE = (
    "G_DBUS_PROPERTY_INFO_FLAGS_READABLE | G_DBUS_PROPERTY_INFO_FLAGS_WRITABLE"
)
ACCESS_READABLE = "G_DBUS_PROPERTY_INFO_FLAGS_READABLE"
ACCESS_WRITABLE = "G_DBUS_PROPERTY_INFO_FLAGS_WRITABLE"
ACCESS_NONE = "G_DBUS_PROPERTY_INFO_FLAGS_NONE"

# Declaration kind -> GDBus struct type.
C_TYPES = {
    "annotation": "GDBusAnnotationInfo",
    "argument": "GDBusArgInfo",
    "method": "GDBusMethodInfo",
    "signal": "GDBusSignalInfo",
    "property": "GDBusPropertyInfo",
    "interface": "GDBusInterfaceInfo",
}

POINTER_ARRAY_COMMENTS = {
    "annotation": "Array with annotation pointers",
    "argument": "Array with argument pointers",
    "method": "Array with method pointers",
    "signal": "Array with signal pointers",
    "property": "Array with property pointers",
}

_C_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def c_string_literal(text: str) -> str:
    return '"' + "".join(_C_ESCAPES.get(ch, ch) for ch in text) + '"'


def c_comment_text(text: str) -> str:
    """Flatten text onto one line so it cannot escape a // comment."""
    return " ".join(text.splitlines())


def property_access_flags(readable: bool, writable: bool) -> str:
    if readable and writable:
        return ACCESS_READWRITE
    if readable:
        return ACCESS_READABLE
    if writable:
        return ACCESS_WRITABLE
    return ACCESS_NONE


# ===--- Generated declarations ---=== #


@dataclass(frozen=True)
class Declaration:
    """One emitted C definition.

    Attributes:
        identifier: Generated C identifier, prefix included.
        kind: Node kind ("method", "argument", ...), "<kind>_pointers" for
            aggregate arrays, or "accessor".
        comment: Single-line comment rendered above the definition.
        text: Fully rendered definition without trailing newline.
        references: Identifiers of earlier declarations embedded in text.
        sections: Section comments rendered before this declaration, one per
            child group (methods, arguments, ...) that starts with it.
    """

    identifier: str
    kind: str
    comment: str
    text: str
    references: tuple[str, ...] = ()
    sections: tuple[str, ...] = ()


@dataclass(frozen=True)
class InterfaceBlock:
    name: str
    declarations: tuple[Declaration, ...]

    @property
    def header(self) -> str:
        return f"// Interface {self.name}"


@dataclass(frozen=True)
class GeneratedDocument:
    interfaces: tuple[InterfaceBlock, ...]

    @property
    def declarations(self) -> tuple[Declaration, ...]:
        """Every declaration of the pass, in emission order."""
        return tuple(d for block in self.interfaces for d in block.declarations)


# ===--- Declaration emitter ---=== #


@dataclass
class DeclarationEmitter:
    """Bottom-up emitter for one generation pass.

    Every emit_* method first emits the node's children, then the node
    itself, and returns the reference the parent embeds: a generated
    identifier, or NULL_SENTINEL for an empty child sequence. Declarations
    accumulate in emission order; every identifier a declaration references
    was therefore emitted before it.

    Scopes passed between emitters are unprefixed identifier paths, e.g.
    "org_example_foo_method_get". The prefix is applied only when a
    declaration identifier is formed.
    """

    config: GeneratorConfig = field(default_factory=GeneratorConfig)
    declarations: list[Declaration] = field(default_factory=list)
    _identifiers: set[str] = field(default_factory=set, init=False, repr=False)
    _annotation_path: list[int] = field(default_factory=list, init=False, repr=False)
    _pending_sections: list[str] = field(default_factory=list, init=False, repr=False)

    def _identifier(self, scope: str) -> str:
        return f"{self.config.identifier_prefix}{scope}"

    def _add(self, declaration: Declaration) -> str:
        if declaration.identifier in self._identifiers:
            raise IdentifierCollisionError(declaration.identifier)
        if self._pending_sections:
            declaration = replace(declaration, sections=tuple(self._pending_sections))
            self._pending_sections.clear()
        self._identifiers.add(declaration.identifier)
        self.declarations.append(declaration)
        return declaration.identifier

    def _emit_struct(
        self, kind: str, scope: str, comment: str, fields: list[str]
    ) -> str:
        identifier = self._identifier(scope)
        indent = self.config.indent_unit
        body = ",\n".join(f"{indent}{value}" for value in [STATIC_REF_COUNT, *fields])
        text = f"static {C_TYPES[kind]} {identifier} =\n{{\n{body}\n}};"
        references = tuple(value for value in fields if value in self._identifiers)
        return self._add(Declaration(identifier, kind, comment, text, references))

    def emit_pointer_array(
        self, kind: str, identifiers: list[str], array_scope: str
    ) -> str:
        """Emit a NULL-terminated array of pointers to sibling declarations.

        Args:
            kind: Kind shared by every identifier, e.g. "method".
            identifiers: Already-emitted declaration identifiers, in order.
            array_scope: Unprefixed array name, e.g. "org_foo_method_pointers".

        Returns:
            The array identifier, or NULL_SENTINEL when identifiers is empty
            (no declaration is emitted in that case).
        """
        if not identifiers:
            return NULL_SENTINEL

        identifier = self._identifier(array_scope)
        indent = self.config.indent_unit
        entries = [f"{indent}&{name}," for name in identifiers]
        entries.append(f"{indent}{NULL_SENTINEL}")
        body = "\n".join(entries)
        text = f"static {C_TYPES[kind]} * {identifier}[] =\n{{\n{body}\n}};"
        return self._add(
            Declaration(
                identifier,
                f"{kind}_pointers",
                POINTER_ARRAY_COMMENTS[kind],
                text,
                tuple(identifiers),
            )
        )

    def emit_annotations(
        self, annotations: tuple[AnnotationInfo, ...], scope: str
    ) -> str:
        """Emit every annotation of one node plus their pointer array.

        Annotation i is named "<scope>_annotation_<i>". Its own nested
        annotations are emitted first, under the scope "<scope>_<key>".

        Raises:
            MalformedInputError: An annotation contains itself, or nesting
                exceeds config.max_annotation_depth.
        """
        if not self.config.emit_annotations or not annotations:
            return NULL_SENTINEL

        self._pending_sections.append(f"Annotations for {scope}")
        emitted: list[str] = []
        for index, annotation in enumerate(annotations):
            emitted.append(self._emit_annotation(annotation, scope, index))

        return self.emit_pointer_array(
            "annotation", emitted, f"{scope}_annotation_pointers"
        )

    def _emit_annotation(
        self, annotation: AnnotationInfo, scope: str, index: int
    ) -> str:
        assert annotation is not None
        node_id = id(annotation)
        if node_id in self._annotation_path:
            raise MalformedInputError(
                f"Annotation '{annotation.key}' under '{scope}' contains itself"
            )
        if len(self._annotation_path) >= self.config.max_annotation_depth:
            raise MalformedInputError(
                f"Annotation '{annotation.key}' under '{scope}' is nested deeper "
                f"than {self.config.max_annotation_depth} levels"
            )

        self._annotation_path.append(node_id)
        try:
            nested_scope = f"{scope}_{normalize_identifier(annotation.key)}"
            nested = self.emit_annotations(annotation.annotations, nested_scope)
        finally:
            self._annotation_path.pop()

        return self._emit_struct(
            "annotation",
            f"{scope}_annotation_{index}",
            f"Annotation {index}",
            [c_string_literal(annotation.key), c_string_literal(annotation.value), nested],
        )

    def emit_argument(self, arg: ArgInfo, function_scope: str, role: str) -> str:
        assert arg is not None
        arg_scope = f"{function_scope}_arg_{normalize_identifier(arg.name)}_{role}"
        annotations = self.emit_annotations(arg.annotations, arg_scope)
        return self._emit_struct(
            "argument",
            arg_scope,
            f"Argument {arg.name}",
            [c_string_literal(arg.name), c_string_literal(arg.signature), annotations],
        )

    def emit_arguments(
        self, args: tuple[ArgInfo, ...], function_scope: str, role: str
    ) -> str:
        if args:
            self._pending_sections.append(f"Arguments {function_scope} for {role}")
        emitted = [self.emit_argument(arg, function_scope, role) for arg in args]
        return self.emit_pointer_array(
            "argument", emitted, f"{function_scope}_arg_{role}_pointers"
        )

    def emit_method(self, method: MethodInfo, interface_scope: str) -> str:
        assert method is not None
        scope = f"{interface_scope}_method_{normalize_identifier(method.name)}"
        in_args = self.emit_arguments(method.in_args, scope, "in")
        out_args = self.emit_arguments(method.out_args, scope, "out")
        annotations = self.emit_annotations(method.annotations, scope)
        return self._emit_struct(
            "method",
            scope,
            f"Method {method.name}",
            [c_string_literal(method.name), in_args, out_args, annotations],
        )

    def emit_signal(self, signal: SignalInfo, interface_scope: str) -> str:
        assert signal is not None
        scope = f"{interface_scope}_signal_{normalize_identifier(signal.name)}"
        args = self.emit_arguments(signal.args, scope, "out")
        annotations = self.emit_annotations(signal.annotations, scope)
        return self._emit_struct(
            "signal",
            scope,
            f"Signal {signal.name}",
            [c_string_literal(signal.name), args, annotations],
        )

    def emit_property(self, prop: PropertyInfo, interface_scope: str) -> str:
        assert prop is not None
        scope = f"{interface_scope}_property_{normalize_identifier(prop.name)}"
        annotations = self.emit_annotations(prop.annotations, scope)
        return self._emit_struct(
            "property",
            scope,
            f"Property {prop.name}",
            [
                c_string_literal(prop.name),
                c_string_literal(prop.signature),
                property_access_flags(prop.readable, prop.writable),
                annotations,
            ],
        )

    def emit_interface(self, interface: InterfaceInfo) -> InterfaceBlock:
        """Emit one interface block: children, arrays, interface, accessor.

        Returns:
            InterfaceBlock holding exactly the declarations emitted for this
            interface, in emission order.
        """
        assert interface is not None
        start = len(self.declarations)
        scope = normalize_identifier(interface.name)

        if interface.methods:
            self._pending_sections.append(f"Methods for {scope}")
        methods = self.emit_pointer_array(
            "method",
            [self.emit_method(method, scope) for method in interface.methods],
            f"{scope}_method_pointers",
        )
        if interface.signals:
            self._pending_sections.append(f"Signals for {scope}")
        signals = self.emit_pointer_array(
            "signal",
            [self.emit_signal(signal, scope) for signal in interface.signals],
            f"{scope}_signal_pointers",
        )
        if interface.properties:
            self._pending_sections.append(f"Properties for {scope}")
        properties = self.emit_pointer_array(
            "property",
            [self.emit_property(prop, scope) for prop in interface.properties],
            f"{scope}_property_pointers",
        )
        annotations = self.emit_annotations(interface.annotations, scope)

        interface_id = self._emit_struct(
            "interface",
            f"{scope}_interface",
            "Interface info",
            [c_string_literal(interface.name), methods, signals, properties, annotations],
        )

        accessor_id = self._identifier(f"{scope}_get_interface_info")
        indent = self.config.indent_unit
        accessor_text = (
            f"GDBusInterfaceInfo *\n"
            f"{accessor_id}(void)\n"
            f"{{\n"
            f"{indent}return &{interface_id};\n"
            f"}}"
        )
        self._add(
            Declaration(
                accessor_id,
                "accessor",
                "Get interface info function",
                accessor_text,
                (interface_id,),
            )
        )

        return InterfaceBlock(
            name=interface.name, declarations=tuple(self.declarations[start:])
        )


# ===--- Document emitter ---=== #


def generate_document(
    document: IntrospectionDocument, config: GeneratorConfig | None = None
) -> GeneratedDocument:
    """Generate declarations for every interface, in document order.

    Pure: returns the declarations instead of writing them anywhere.

    Args:
        document: Parsed introspection tree. Must not be None.
        config: Generation options; defaults to GeneratorConfig().

    Returns:
        GeneratedDocument with one InterfaceBlock per interface.

    Raises:
        ValueError: document is None (caller contract violation).
        IdentifierCollisionError: Two nodes produced the same identifier.
        MalformedInputError: Cyclic or over-deep annotation nesting.
    """
    if document is None:
        raise ValueError("document must not be None")

    emitter = DeclarationEmitter(config=config or GeneratorConfig())
    try:
        blocks = tuple(emitter.emit_interface(iface) for iface in document.interfaces)
    except RecursionError as err:
        raise MalformedInputError(
            "Annotation nesting exceeds the interpreter recursion limit"
        ) from err
    return GeneratedDocument(interfaces=blocks)


def render_document(generated: GeneratedDocument) -> str:
    """Fold a GeneratedDocument into the final C source text.

    Output layout:
        #include <glib.h>
        #include <gio/gio.h>
                                        <- blank line
        /* Introspection data begins */
                                        <- blank line
        // Interface <name>             <- per interface block
                                        <- blank line
        // <section>                    <- per section opened here, e.g.
                                        <- "Methods for <scope>", followed
                                        <- by a blank line
        // <comment>                    <- per declaration
        <definition>
                                        <- blank line
        /* Introspection data ends */

    Comment text is flattened to one line.

    Returns:
        Complete C source string including trailing newline.
    """
    parts: list[str] = [*PREAMBLE_LINES, "", BEGIN_BANNER, ""]

    for block in generated.interfaces:
        parts.append(c_comment_text(block.header))
        parts.append("")
        for declaration in block.declarations:
            for section in declaration.sections:
                parts.append(f"// {c_comment_text(section)}")
                parts.append("")
            parts.append(f"// {c_comment_text(declaration.comment)}")
            parts.append(declaration.text)
            parts.append("")

    parts.append(END_BANNER)
    return "\n".join(parts) + "\n"


def generate_source(
    document: IntrospectionDocument, config: GeneratorConfig | None = None
) -> str:
    return render_document(generate_document(document, config))


# ===--- Output writer ---=== #


@dataclass(frozen=True)
class WriteResult:
    destination: str
    line_count: int
    byte_count: int


def write_output(source: str, output: Path | None = None) -> WriteResult:
    """Write generated source to a file, or to stdout when output is None.

    The source is always written as UTF-8, whatever the locale encoding of
    stdout.

    Raises:
        OSError: Propagated directly if the filesystem write fails.
    """
    encoded = source.encode("utf-8")
    if output is None:
        sys.stdout.flush()
        stream = getattr(sys.stdout, "buffer", None)
        if stream is None:
            sys.stdout.write(source)
            sys.stdout.flush()
        else:
            stream.write(encoded)
            stream.flush()
        destination = "<stdout>"
    else:
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(encoded)
        destination = str(output.resolve())
    return WriteResult(
        destination=destination,
        line_count=source.count("\n"),
        byte_count=len(encoded),
    )


# ===--- Pipeline ---=== #


def _progress(config: RunConfig, message: str) -> None:
    if config.verbose:
        print(message, file=sys.stderr)


def run_generate(config: RunConfig) -> WriteResult:
    """Read, parse, generate, render and write for one RunConfig.

    Raises:
        InputReadError: Input unreadable.
        IntrospectionParseError: Input not a valid introspection document.
        GenerationError: Identifier collision or malformed annotation nesting.
        OSError: Output write failure.
    """
    _progress(config, f"Parsing: {config.input_path}")
    document = load_introspection(
        config.input_path, config.generator.max_annotation_depth
    )
    _progress(config, f"  Interfaces: {len(document.interfaces)}")

    generated = generate_document(document, config.generator)
    _progress(config, f"  Declarations: {len(generated.declarations)}")

    result = write_output(render_document(generated), config.output_path)
    _progress(
        config,
        f"  Written: {result.line_count} lines, {result.byte_count} bytes "
        f"to {result.destination}",
    )
    return result


# ===--- Main ---=== #


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}", file=sys.stderr)
        if err.suggestion:
            print(f"Hint: {err.suggestion}", file=sys.stderr)
        raise SystemExit(EXIT_USAGE) from err

    try:
        run_generate(config)
    except InputReadError as err:
        print(f"Error: {err}", file=sys.stderr)
        raise SystemExit(EXIT_READ_ERROR) from err
    except IntrospectionParseError as err:
        print(f"Parsing error: {err}", file=sys.stderr)
        raise SystemExit(EXIT_PARSE_ERROR) from err
    except GenerationError as err:
        print(f"Generation error: {err}", file=sys.stderr)
        raise SystemExit(EXIT_GENERATION_ERROR) from err
    except OSError as err:
        print(f"Write error: {err}", file=sys.stderr)
        raise SystemExit(EXIT_WRITE_ERROR) from err


if __name__ == "__main__":
    main()
