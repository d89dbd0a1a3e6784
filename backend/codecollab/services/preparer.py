"""
CodeCollab - Source Preparer

Per-language text transforms that make submitted code behave interactively
when its stdio is a pipe. Nothing here touches the filesystem.
"""

import re
from dataclasses import dataclass
from typing import Optional

from codecollab.core.errors import MissingEntryPoint
from codecollab.schemas.execution import Language

MAIN_DECLARATION = re.compile(r"int\s+main\s*\([^)]*\)\s*\{")
SETVBUF_CALL = re.compile(r"setvbuf\s*\(")
STDIO_INCLUDE = re.compile(r"^\s*#\s*include\s*<stdio\.h>", re.MULTILINE)
IOSTREAM_INCLUDE = re.compile(r"^\s*#\s*include\s*<iostream>", re.MULTILINE)
CSTDIO_INCLUDE = re.compile(r"^\s*#\s*include\s*<cstdio>", re.MULTILINE)

JAVA_PUBLIC_CLASS = re.compile(r"public\s+class\s+(\w+)")
JAVA_CLASS_BODY = re.compile(r"public\s+class\s+(\w+)\s*\{")
JAVA_AUTOFLUSH_MARKER = "AUTOFLUSH_STDOUT_MARKER"

JAVASCRIPT_PRELUDE = """const fs = require('fs');
function prompt(question) {
  fs.writeSync(1, String(question === undefined ? '' : question));
  const buf = Buffer.alloc(1024);
  const n = fs.readSync(0, buf, 0, 1024);
  return buf.toString('utf8', 0, n).trim();
}
global.alert = msg => console.log(msg);
global.confirm = q => /^y(es)?$/i.test(prompt(q + " (y/n) ").trim());
// --- user code starts here ---
"""

JAVASCRIPT_EPILOGUE = """
// --- user code ends here ---
"""


@dataclass(frozen=True)
class PreparedSource:
    """Compile/run-ready source text and, where relevant, the entry point name."""
    text: str
    entry_name: Optional[str] = None


def inject_c_unbuffered(source: str) -> str:
    """Disable stdout buffering at the top of main() unless the code already does."""
    if SETVBUF_CALL.search(source):
        return source

    code = source
    if not STDIO_INCLUDE.search(code):
        code = "#include <stdio.h>\n" + code

    return MAIN_DECLARATION.sub(
        lambda m: f"{m.group(0)}\n    setvbuf(stdout, NULL, _IONBF, 0); /* auto-added */",
        code,
        count=1,
    )


def inject_cpp_unbuffered(source: str) -> str:
    """Make both iostreams and stdio flush on every write."""
    if "unitbuf" in source or SETVBUF_CALL.search(source):
        return source

    code = source
    if not IOSTREAM_INCLUDE.search(code):
        code = "#include <iostream>\n" + code
    if not CSTDIO_INCLUDE.search(code):
        code = "#include <cstdio>\n" + code

    return MAIN_DECLARATION.sub(
        lambda m: (
            f"{m.group(0)}\n"
            "    std::ios::sync_with_stdio(false);\n"
            "    std::cout.setf(std::ios::unitbuf);\n"
            "    setvbuf(stdout, NULL, _IONBF, 0);\n"
        ),
        code,
        count=1,
    )


def java_entry_class(source: str) -> str:
    """
    Name of the public class that holds main().

    Raises:
        MissingEntryPoint: No public class declaration was found
    """
    match = JAVA_PUBLIC_CLASS.search(source)
    if not match:
        raise MissingEntryPoint("Java needs a public class")
    return match.group(1)


def inject_java_autoflush(source: str) -> str:
    """Replace System.out with an auto-flushing stream; safe to apply twice."""
    if JAVA_AUTOFLUSH_MARKER in source:
        return source

    return JAVA_CLASS_BODY.sub(
        lambda m: (
            f"public class {m.group(1)} {{\n"
            f"    /* {JAVA_AUTOFLUSH_MARKER} */\n"
            "    static { System.setOut(new java.io.PrintStream(System.out, true)); }\n"
        ),
        source,
        count=1,
    )


def wrap_javascript(source: str) -> str:
    """Give the script blocking prompt()/confirm() bound to the process's stdio."""
    return f"{JAVASCRIPT_PRELUDE}{source}{JAVASCRIPT_EPILOGUE}"


def prepare_source(code: str, language: Language) -> PreparedSource:
    """
    Transform raw source into its compile/run-ready form.

    Args:
        code: Source text as typed by the user
        language: Target language

    Returns:
        PreparedSource with the text to write and the entry point name (Java only)
    """
    if language == Language.C:
        return PreparedSource(inject_c_unbuffered(code))
    if language == Language.CPP:
        return PreparedSource(inject_cpp_unbuffered(code))
    if language == Language.JAVA:
        class_name = java_entry_class(code)
        return PreparedSource(inject_java_autoflush(code), entry_name=class_name)
    if language == Language.JAVASCRIPT:
        return PreparedSource(wrap_javascript(code))
    return PreparedSource(code)
