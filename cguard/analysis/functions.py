"""
Function index for a C translation unit.

Uses tree-sitter to find function definitions and prototypes, then maps
their byte ranges onto the lexer's token indices so the rewriters can work
on exact token slices. Definitions nested in preprocessor conditionals and
``extern "C"`` blocks are found; function bodies are not descended into.
"""

import bisect
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

try:
    import tree_sitter_c as tsc
    from tree_sitter import Language, Parser, Node as TSNode
    TREE_SITTER_C_AVAILABLE = True
except ImportError:
    TREE_SITTER_C_AVAILABLE = False
    TSNode = Any

from cguard.core.tokens import TokenList
from cguard.errors import require_tokens

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FunctionDef:
    """A function definition as token ranges: header [start, body_start), body [body_start, end)"""
    name: str
    start: int
    body_start: int
    end: int

    def contains(self, index: int) -> bool:
        return self.start <= index < self.end

    def in_body(self, index: int) -> bool:
        return self.body_start <= index < self.end


@dataclass(frozen=True)
class Prototype:
    """A top-level function declaration ``T f(args);`` as tokens [start, end)"""
    name: str
    start: int
    end: int


class FunctionIndex:
    """
    Locates functions in C source.

    Usage:
        index = FunctionIndex()
        functions, prototypes = index.scan(tokenize(source))
    """

    def __init__(self):
        if not TREE_SITTER_C_AVAILABLE:
            raise ImportError(
                "tree-sitter-c is required. "
                "Install with: pip install tree-sitter-c"
            )

        self.parser = Parser(Language(tsc.language()))

        # State during a scan
        self._source = b""
        self._char_offsets: Optional[List[int]] = None
        self._starts: List[int] = []
        self._count = 0

    def scan(self, tokens: TokenList) -> Tuple[List[FunctionDef], List[Prototype]]:
        """Index the definitions and prototypes in ``tokens.source``"""
        require_tokens(tokens, "FunctionIndex.scan")
        text = tokens.source
        self._source = text.encode("utf-8", "surrogateescape")
        # Byte offsets equal character offsets for pure ASCII input
        self._char_offsets = None if len(self._source) == len(text) else self._build_offsets(text)
        self._starts = [tok.pos for tok in tokens]
        self._count = len(tokens)

        tree = self.parser.parse(self._source)
        functions: List[FunctionDef] = []
        prototypes: List[Prototype] = []
        self._collect(tree.root_node, functions, prototypes, top_level=True)
        logger.debug("indexed %d functions, %d prototypes", len(functions), len(prototypes))
        return functions, prototypes

    def _collect(self, node: TSNode, functions: List[FunctionDef], prototypes: List[Prototype],
                 top_level: bool):
        for child in node.children:
            if child.type == "function_definition":
                func = self._translate_function(child)
                if func is not None:
                    functions.append(func)
            elif child.type == "declaration":
                if top_level:
                    proto = self._translate_prototype(child)
                    if proto is not None:
                        prototypes.append(proto)
            elif child.type in ("preproc_if", "preproc_ifdef", "preproc_else", "preproc_elif",
                                "preproc_elifdef", "linkage_specification", "declaration_list",
                                "ERROR"):
                self._collect(child, functions, prototypes, top_level)

    def _translate_function(self, node: TSNode) -> Optional[FunctionDef]:
        declarator = node.child_by_field_name("declarator")
        body = node.child_by_field_name("body")
        if declarator is None or body is None:
            return None
        name = self._get_function_name(declarator)
        if name is None:
            logger.debug("skipping function with unrecognised declarator at byte %d", node.start_byte)
            return None
        return FunctionDef(
            name=name,
            start=self._token_at(node.start_byte),
            body_start=self._token_at(body.start_byte),
            end=self._token_after(node.end_byte),
        )

    def _translate_prototype(self, node: TSNode) -> Optional[Prototype]:
        declarator = node.child_by_field_name("declarator")
        if declarator is None or self._function_declarator(declarator) is None:
            return None
        name = self._get_function_name(declarator)
        if name is None:
            return None
        return Prototype(name, self._token_at(node.start_byte), self._token_after(node.end_byte))

    def _function_declarator(self, declarator: TSNode) -> Optional[TSNode]:
        """The function_declarator under pointer/attributed wrappers"""
        while declarator is not None:
            if declarator.type == "function_declarator":
                return declarator
            if declarator.type not in ("pointer_declarator", "attributed_declarator"):
                return None
            declarator = declarator.child_by_field_name("declarator")
        return None

    def _get_function_name(self, declarator: TSNode) -> Optional[str]:
        """Extract function name from declarator"""
        if declarator.type == "function_declarator":
            inner = declarator.child_by_field_name("declarator")
            if inner is not None:
                if inner.type == "identifier":
                    return self._get_text(inner)
                if inner.type == "parenthesized_declarator":
                    # int (f)(void)
                    for child in inner.named_children:
                        if child.type == "identifier":
                            return self._get_text(child)
                return None
        elif declarator.type in ("pointer_declarator", "attributed_declarator"):
            inner = declarator.child_by_field_name("declarator")
            if inner is not None:
                return self._get_function_name(inner)
        return None

    def _get_text(self, node: TSNode) -> str:
        return self._source[node.start_byte:node.end_byte].decode("utf-8", "surrogateescape")

    def _char_offset(self, byte_offset: int) -> int:
        if self._char_offsets is None:
            return byte_offset
        return self._char_offsets[byte_offset]

    def _token_at(self, byte_offset: int) -> int:
        """Index of the token containing ``byte_offset``"""
        pos = self._char_offset(byte_offset)
        return max(bisect.bisect_right(self._starts, pos) - 1, 0)

    def _token_after(self, byte_offset: int) -> int:
        """Index of the first token starting at or after ``byte_offset``"""
        pos = self._char_offset(byte_offset)
        return bisect.bisect_left(self._starts, pos, 0, self._count)

    @staticmethod
    def _build_offsets(text: str) -> List[int]:
        """Map every byte offset of the UTF-8 encoding to a character offset"""
        offsets = []
        for char_index, char in enumerate(text):
            width = len(char.encode("utf-8", "surrogateescape"))
            offsets.extend([char_index] * width)
        offsets.append(len(text))
        return offsets
