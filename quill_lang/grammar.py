from functools import lru_cache
from typing import Iterator

from lark import Lark, Token
from lark.lark import PostLex

QUILL_GRAMMAR = r"""
    start: _stmts

    _stmts: _sep* (statement (_sep+ statement)*)? _sep*
    _sep: ";" | _NL

    // --- Statements ---
    ?statement: import_stmt
              | func_def
              | if_stmt
              | while_stmt
              | for_stmt
              | try_stmt
              | return_stmt
              | "break"                                  -> break_stmt
              | "continue"                               -> continue_stmt
              | declaration
              | assignment
              | expr                                     -> expr_stmt

    import_stmt: "import" dotted_name WILDCARD?
    dotted_name: NAME ("." NAME)*

    func_def: "def" NAME "(" [params] ")" _NL* block
    params: NAME ("," NAME)*

    block: "{" _stmts "}"

    if_stmt: "if" "(" expr ")" _NL* block (_NL* "else" _NL* (if_stmt | block))?
    while_stmt: "while" "(" expr ")" _NL* block
    for_stmt: "for" "(" _for_control ")" _NL* block
    _for_control: for_each | for_classic
    for_each: (NAME | "def")? NAME ("in" | ":") expr
    for_classic: [for_init] ";" [expr] ";" [for_update]
    ?for_init: declaration | assignment
    ?for_update: assignment | expr

    try_stmt: "try" _NL* block catch_clause* finally_clause?
    catch_clause: _NL* "catch" "(" NAME NAME? ")" _NL* block
    finally_clause: _NL* "finally" _NL* block

    return_stmt: "return" expr?

    declaration: (NAME | "def") NAME "=" expr

    assignment: target "=" expr                          -> assign
              | target "+=" expr                         -> assign_add
              | target "-=" expr                         -> assign_sub
              | target "*=" expr                         -> assign_mul
              | target "/=" expr                         -> assign_div

    ?target: NAME                                        -> target_var
           | postfix "." NAME                            -> target_attr
           | postfix "[" expr "]"                        -> target_item

    // --- Expressions ---
    ?expr: ternary
    ?ternary: or_expr
            | or_expr "?" expr ":" expr                  -> ternary
            | or_expr "?:" expr                          -> elvis
    ?or_expr: and_expr
            | or_expr "||" and_expr                      -> or_
    ?and_expr: equality
             | and_expr "&&" equality                    -> and_
    ?equality: comparison
             | equality "==" comparison                  -> eq
             | equality "!=" comparison                  -> ne
             | equality "=~" comparison                  -> find
             | equality "==~" comparison                 -> match
    ?comparison: sum
               | comparison "<" sum                      -> lt
               | comparison ">" sum                      -> gt
               | comparison "<=" sum                     -> le
               | comparison ">=" sum                     -> ge
               | comparison "in" sum                     -> contains
               | comparison "instanceof" sum             -> instanceof
    ?sum: product
        | sum "+" product                                -> add
        | sum "-" product                                -> sub
    ?product: unary
            | product "*" unary                          -> mul
            | product "/" unary                          -> div
            | product "%" unary                          -> mod
    ?unary: postfix
          | "-" unary                                    -> neg
          | "!" unary                                    -> not_
          | "~" unary                                    -> pattern
    ?postfix: atom
            | postfix "." NAME                           -> get_attr
            | postfix "?." NAME                          -> safe_attr
            | postfix "[" expr "]"                       -> get_item
            | postfix "." NAME "(" [args] ")" [closure]  -> call_method
            | postfix "." NAME closure                   -> call_method_closure
            | postfix "?." NAME "(" [args] ")"           -> safe_call
            | NAME "(" [args] ")" [closure]              -> call
            | "new" dotted_name "(" [args] ")"           -> new_instance

    args: expr ("," expr)*

    ?atom: NUMBER                                        -> number
         | STRING                                        -> string
         | "true"                                        -> true
         | "false"                                       -> false
         | "null"                                        -> null
         | NAME                                          -> var
         | "[" (expr ("," expr)*)? "]"                   -> list_lit
         | "[" ":" "]"                                   -> empty_map
         | "[" map_entry ("," map_entry)* "]"            -> map_lit
         | closure
         | "(" expr ")"

    map_entry: (NAME | STRING | NUMBER) ":" expr
    closure: "{" (closure_params? ARROW)? _stmts "}"
    closure_params: NAME ("," NAME)*

    ARROW: "->"
    WILDCARD: ".*"
    NAME: /[a-zA-Z_]\w*/
    NUMBER: /\d+\.\d+|\d+/
    STRING: /"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*'/
    _NL: /(\r?\n[\t ]*)+/

    %ignore /[\t \f\r]+/
    %ignore /\/\/[^\n]*/
"""

_OPENERS = {"LPAR": "RPAR", "LSQB": "RSQB", "LBRACE": "RBRACE"}
_CLOSERS = set(_OPENERS.values())


class BracketNewlines(PostLex):
    """Drops newlines nested inside round or square brackets.

    Inside curly brackets (blocks and closures) newlines keep separating
    statements.
    """

    always_accept = ("_NL",)

    def process(self, stream: Iterator[Token]) -> Iterator[Token]:
        nesting = []
        for token in stream:
            if token.type in _OPENERS:
                nesting.append(token.type)
            elif token.type in _CLOSERS:
                if nesting:
                    nesting.pop()
            elif token.type == "_NL" and nesting and nesting[-1] != "LBRACE":
                continue
            yield token


@lru_cache(maxsize=None)
def get_parser() -> Lark:
    return Lark(
        QUILL_GRAMMAR,
        parser="earley",
        lexer="basic",
        postlex=BracketNewlines(),
        maybe_placeholders=True,
    )
