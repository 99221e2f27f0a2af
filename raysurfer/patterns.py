"""Regex patterns and name sets for detecting agent side effects.

Kept in a standalone module so core/interceptor.py and session.py can share
them without importing each other.
"""

# Tools whose input names a file the agent creates or edits
FILE_MODIFY_TOOLS: frozenset[str] = frozenset({"Write", "Edit", "MultiEdit", "NotebookEdit"})

FILE_PATH_KEYS: tuple[str, ...] = ("file_path", "notebook_path")

BASH_TOOL = "Bash"

# Output files named inside a shell command
BASH_OUTPUT_PATTERNS: list[str] = [
    r">>\s*([^\s;&|]+)",                    # append redirect
    r">\s*([^\s;&|]+)",                     # redirect
    r"-o\s+([^\s;&|]+)",                    # -o flag
    r"--output[=\s]+([^\s;&|]+)",           # --output flag
    r"savefig\(['\"]([^'\"]+)['\"]\)",      # matplotlib
    r"to_csv\(['\"]([^'\"]+)['\"]\)",       # pandas
    r"to_excel\(['\"]([^'\"]+)['\"]\)",     # pandas
    r"write\(['\"]([^'\"]+)['\"]\)",
]

TRACKABLE_EXTENSIONS: frozenset[str] = frozenset({
    ".py", ".js", ".ts", ".rb", ".go", ".rs", ".java", ".cpp", ".c", ".h",
    ".pdf", ".docx", ".xlsx", ".csv", ".json", ".yaml", ".yml", ".xml",
    ".html", ".css", ".md", ".txt", ".sh", ".sql",
})

# ```lang\n ... ``` ; group 1 = fence language (may be empty), group 2 = body
CODE_FENCE_PATTERN = r"```([\w+#.-]*)[ \t]*\n?(.*?)\n?```"

# Fence language -> file extension for the synthetic generated-code artifact
FENCE_EXTENSIONS: dict[str, str] = {
    "python": ".py",
    "py": ".py",
    "typescript": ".ts",
    "ts": ".ts",
    "tsx": ".tsx",
    "javascript": ".js",
    "js": ".js",
    "jsx": ".jsx",
    "ruby": ".rb",
    "rb": ".rb",
    "go": ".go",
    "golang": ".go",
    "rust": ".rs",
    "rs": ".rs",
    "java": ".java",
    "cpp": ".cpp",
    "c++": ".cpp",
    "c": ".c",
    "bash": ".sh",
    "sh": ".sh",
    "shell": ".sh",
    "sql": ".sql",
    "html": ".html",
    "css": ".css",
    "json": ".json",
    "yaml": ".yaml",
    "yml": ".yaml",
}

DEFAULT_FENCE_EXTENSION = ".py"

GENERATED_CODE_STEM = "generated_code"
