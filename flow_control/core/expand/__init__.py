"""Macro expansion engine.

Expansion is purely syntactic: invocations are matched by arity against a
fixed set of shapes and replaced by ordinary `if` statements. Nothing is
evaluated and no state survives between expansions.
"""
