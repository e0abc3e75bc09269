from .api import CompileOptions, CompileResult, build_executable, compile_file, compile_string
from .codegen import CodeGen, generate
from .interpreter import Interpreter, RunResult
from .optimizer import optimize
from .parser import parse

__all__ = [
    'CodeGen',
    'generate',
    'optimize',
    'parse',
    'Interpreter',
    'RunResult',
    'CompileOptions',
    'CompileResult',
    'compile_string',
    'compile_file',
    'build_executable',
]
