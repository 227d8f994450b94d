from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

_ = Path()

DEFAULT_OUTPUT_TEMPLATE = ">>>> FILE_PATH\nFILE_CONTENT"

CONFIG_FILENAMES: tuple[str, ...] = (
    "repo-chunker.yaml",
    "repo-chunker.yml",
    "repo-chunker.toml",
    "repo-chunker.json",
)

ARTIFACT_PREFIX = "chunk-"

# Extensions are compared lower-cased and without the leading dot.
BINARY_FILE_EXTENSIONS: frozenset[str] = frozenset(
    {
        # executables, libraries, object files
        "exe", "dll", "so", "dylib", "ocx", "ax", "drv", "sys", "msi", "app", "ipa", "apk",
        "bin", "out", "a", "lib", "ko", "elf", "o", "nro", "core", "img", "iso",
        "class", "jar", "war", "ear", "nupkg", "pyc", "pyo", "pyd",
        # archives
        "zip", "tar", "gz", "tgz", "bz2", "xz", "7z", "rar", "lz4", "lz", "zst", "lzma",
        "cab", "ar", "cpio", "rpm", "deb", "pkg", "crx", "dmg", "hfs", "cso",
        "bz", "tbz", "tbz2", "tlz", "txz", "z", "xapk",
        # disk and container images
        "vhd", "vhdx", "vmdk", "vdi", "qcow", "qcow2", "mdf", "mds", "nrg", "uif",
        # documents
        "pdf", "doc", "docx", "dot", "dotx", "docm", "dotm",
        "xls", "xlsx", "xlsm", "xlsb", "xlt", "xltx", "xltm", "xlc", "xlw",
        "ppt", "pptx", "pptm", "pps", "ppsx", "pot", "potx", "potm",
        "pub", "vsd", "vsdx", "accdb", "accde", "mdb", "mde",
        "odt", "ods", "odp", "odg", "odf", "pages", "numbers", "key", "rtf",
        # databases
        "db", "sqlite", "sqlite3", "db3", "s3db", "frm", "myd", "myi", "bak", "nsf", "gdb", "fdb", "wdb",
        # images
        "jpg", "jpeg", "png", "gif", "bmp", "ico", "tiff", "tif", "webp", "jfif", "jp2",
        "psd", "psb", "xcf", "ai", "eps", "raw", "arw", "cr2", "nef", "dng", "raf", "orf",
        "sr2", "heic", "heif", "icns", "bpg",
        # audio
        "mp3", "mp2", "aac", "ac3", "wav", "ogg", "oga", "flac", "alac", "m4a", "mp4a",
        "wma", "ra", "ram", "ape", "opus", "amr", "awb",
        # video
        "mp4", "m4v", "mov", "avi", "wmv", "mkv", "flv", "f4v", "f4p", "f4a", "f4b", "3gp",
        "3g2", "mpeg", "mpg", "mpe", "m1v", "m2v", "mts", "m2ts", "vob", "rm", "rmvb",
        "asf", "ogv", "ogm", "webm", "dv", "divx", "xvid",
        # fonts
        "ttf", "otf", "woff", "woff2", "eot", "fon", "psf",
        # firmware, roms, game data
        "rom", "gba", "gbc", "nds", "n64", "z64", "v64", "gcm", "ciso", "wbfs",
        "pak", "wad", "dat", "sav", "rpx",
        # flash, cad, 3d
        "swf", "fla", "svgz", "dwg", "dxf", "dwf", "skp", "ifc",
        "stl", "obj", "fbx", "dae", "blend", "3ds", "ase", "glb",
        # e-books
        "epub", "mobi", "azw", "azw3", "fb2", "lrf", "lit", "pdb",
        # misc
        "swp", "swo", "pch", "xex", "dmp", "mdmp", "bkf", "bkp", "idx", "vcd",
        "hlp", "chm", "torrent", "mar", "aab", "appx", "xap",
    },
)  # fmt: skip

# Gitignore-style patterns applied before the repository's own .gitignore.
DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    "LICENSE",
    ".git/**",
    ".next/**",
    "node_modules/**",
    "vendor/**",
    "dist/**",
    "build/**",
    "out/**",
    "target/**",
    "bin/**",
    "obj/**",
    ".idea/**",
    ".vscode/**",
    ".vs/**",
    ".settings/**",
    ".gradle/**",
    ".mvn/**",
    ".pytest_cache/**",
    ".mypy_cache/**",
    ".ruff_cache/**",
    ".venv/**",
    "__pycache__/**",
    ".sass-cache/**",
    ".vercel/**",
    ".turbo/**",
    "coverage/**",
    "test-results/**",
    ".gitignore",
    *CONFIG_FILENAMES,
    "pnpm-lock.yaml",
    "package-lock.json",
    "yarn.lock",
    "Cargo.lock",
    "Gemfile.lock",
    "composer.lock",
    "mix.lock",
    "poetry.lock",
    "uv.lock",
    "Pipfile.lock",
    "packages.lock.json",
    "paket.lock",
    "*.log",
    "*.tmp",
    "*.temp",
    ".DS_Store",
    "Thumbs.db",
    ".env*",
    "*~",
)


class PriorityRule(BaseModel):
    """A regex rule contributing a score to every path it matches.

    Attributes:
        pattern: Regular expression searched (not full-matched) in the relative path.
        score: Score granted to matching paths; a path keeps the highest matching score.
    """

    model_config = ConfigDict(frozen=True)

    pattern: str = Field(..., description="Regular expression searched in the relative path")
    score: int = Field(..., description="Score granted to matching paths")


class FileDescriptor(BaseModel):
    """A discovered text file with its final priority.

    Attributes:
        path: Absolute path to the file on disk.
        rel_path: Path relative to the input root, POSIX separators.
        priority: Rule score plus recency boost.
        boost: Recency boost alone (0 when no history is available).
        file_index: Position in the discovery walk; the final ordering tiebreak.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Absolute file path")
    rel_path: str = Field(..., description="File path relative to the input root")
    priority: int = Field(..., description="Rule score plus recency boost")
    boost: int = Field(default=0, ge=0, description="Recency boost")
    file_index: int = Field(..., ge=0, description="Discovery order")


class FileChunk(BaseModel):
    """A whole file, or one size-bounded part of it, travelling from a worker to the aggregator."""

    model_config = ConfigDict(frozen=True)

    priority: int
    file_index: int = Field(..., ge=0)
    part_index: int = Field(default=0, ge=0)
    rel_path: str
    content: str

    @property
    def sort_key(self) -> tuple[int, int, int]:
        """Total order restored by the aggregator."""
        return (self.priority, self.file_index, self.part_index)
