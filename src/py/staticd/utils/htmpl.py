from typing import (
    LiteralString,
    Optional,
    Iterable,
    Iterator,
    Union,
    Callable,
    cast,
)
from mypy_extensions import KwArg, VarArg

# --
# HTMPL defines functions to create HTML documents from Python, used to
# render directory listings.

HTML_EMPTY: list[LiteralString] = "br hr img link meta".split()
HTML_ESCAPED = str.maketrans(
    {"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&#x27;"}
)

HTML_QUOTED = str.maketrans({"&": "&amp;", '"': "&quot;", "<": "&lt;"})


def escape(text: str) -> str:
    return text.translate(HTML_ESCAPED)


def quoted(text: Optional[str]) -> str:
    return text.translate(HTML_QUOTED) if text else ""


TNodeContent = Union["Node", str]
TAttributeContent = str | bool | float | int | None


class Node:
    __slots__ = ["name", "attributes", "children"]

    def __init__(
        self,
        name: str,
        children: Optional[Iterable[TNodeContent]] = None,
        attributes: Optional[dict[str, TAttributeContent]] = None,
    ):
        self.name = name
        self.attributes: dict[str, TAttributeContent] = attributes or {}
        self.children: list[TNodeContent] = [_ for _ in children] if children else []

    def iterHTML(self) -> Iterator[str]:
        if self.name == "#text":
            yield escape(str(self.attributes.get("#value") or ""))
        else:
            yield f"<{self.name}"
            for k, v in self.attributes.items():
                if v is None or v is False:
                    continue
                yield f" {k}" if v is True else f' {k}="{quoted(str(v))}"'
            yield ">"
            if self.name not in HTML_EMPTY:
                for _ in self.children:
                    if isinstance(_, Node):
                        yield from _.iterHTML()
                    else:
                        yield escape(_)
                yield f"</{self.name}>"

    def __str__(self) -> str:
        return "".join(self.iterHTML())


def text(value: str) -> Node:
    return Node("#text", attributes={"#value": value})


NodeFactory = Callable[
    [
        VarArg(TNodeContent | list[TNodeContent]),
        KwArg(TAttributeContent),
    ],
    Node,
]


def nodeFactory(name: str) -> NodeFactory:
    def f(
        *children: TNodeContent | list[TNodeContent], **attributes: TAttributeContent
    ) -> Node:
        content: list[TNodeContent] = []
        for _ in children:
            if isinstance(_, list):
                content += _
            else:
                content.append(_)
        # `_` is a shorthand for the class attribute
        attrs: dict[str, TAttributeContent] = {
            ("class" if k == "_" else k): v for k, v in attributes.items()
        }
        return Node(
            name,
            [text(_) if isinstance(_, str) else _ for _ in content],
            attrs,
        )

    f.__name__ = name
    return cast(NodeFactory, f)


HTML_TAGS: list[LiteralString] = (
    """\
a body br div h1 h2 head hr html li link meta p section span style title ul\
""".split()
)


class Markup:
    __slots__ = ["_factories", "_name"]

    def __init__(self, name: str, factories: dict[str, NodeFactory]):
        self._name: str = name
        self._factories: dict[str, NodeFactory] = factories

    def __getattr__(self, name: str) -> NodeFactory:
        factories = self._factories
        if name not in factories:
            raise AttributeError(
                f"No tag {name}, pick one of {','.join(factories.keys())}"
            )
        return factories[name]


def markup(name: str, tags: list[LiteralString]) -> Markup:
    return Markup(name, {_: nodeFactory(_) for _ in tags})


H: Markup = markup("html", HTML_TAGS)


def html(*nodes: Node, doctype: str | None = None) -> Iterator[str]:
    if doctype:
        yield f"{doctype}\n" if doctype.startswith("<!") else f"<!DOCTYPE {doctype}>\n"
    for _ in nodes:
        yield from _.iterHTML()


# EOF
