import json
import logging
import os
from typing import NamedTuple, Optional, TypeAlias

MANIFEST_FILE = "cache_domains.json"
OUTPUT_FILE = "cachedomains.vcl"

PREAMBLE = r"""/* generated, do not edit */
sub set_cache_domain {
    unset req.http.x-cache-domain;
    if (req.http.user-agent ~ "Valve/Steam HTTP Client 1\.0") {
        /* This agent is a special case, use steam as cache domain
         * regardless of the hostname. */
        set req.http.x-cache-domain = "steam";
"""
BRANCH = """    }} else if (req.http.host ~ "{pattern}") {{
        // {description}
        set req.http.x-cache-domain = "{name}";
"""
EPILOGUE = """    }
}"""

StrPath: TypeAlias = str | os.PathLike


class CacheDomainsError(Exception):
    pass


class ManifestError(CacheDomainsError):
    pass


class DomainFileError(CacheDomainsError):
    path: str

    def __init__(self, path: str, reason: str):
        super().__init__(f"Unable to read file: {path} ({reason})")
        self.path = path


class OutputError(CacheDomainsError):
    pass


class CacheDomain:
    name: str
    description: str
    domain_files: list[str]

    def __init__(self, name: str, description: str, domain_files: list[str]):
        self.name, self.description, self.domain_files = (
            name,
            description,
            domain_files,
        )

    def __repr__(self) -> str:
        return f"CacheDomain({self.name!r}, {self.description!r}, {self.domain_files!r})"

    @staticmethod
    def from_json(index: int, entry) -> "CacheDomain":
        if not isinstance(entry, dict):
            raise ManifestError(f"cache_domains[{index}] is not an object")
        for key, type_ in (("name", str), ("description", str), ("domain_files", list)):
            if key not in entry:
                raise ManifestError(f"cache_domains[{index}] has no {key!r}")
            if not isinstance(entry[key], type_):
                raise ManifestError(
                    f"cache_domains[{index}].{key} is not a {type_.__name__}"
                )
        domain_files = entry["domain_files"]
        if not all(isinstance(f, str) for f in domain_files):
            raise ManifestError(f"cache_domains[{index}].domain_files must be strings")
        return CacheDomain(entry["name"], entry["description"], list(domain_files))


class CompiledDomain(NamedTuple):
    name: str
    description: str
    pattern: str


def load_manifest(dataset_dir: StrPath) -> list[CacheDomain]:
    path = os.path.join(dataset_dir, MANIFEST_FILE)
    logging.info("Reading %s", path)
    try:
        with open(path, encoding="utf-8") as f:
            manifest = json.load(f)
    except OSError as e:
        raise ManifestError(f"Unable to read {path}: {e.strerror or e}") from e
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(manifest, dict):
        raise ManifestError(f"{path}: top level is not an object")
    entries = manifest.get("cache_domains")
    if entries is None:
        raise ManifestError(f"{path}: missing 'cache_domains'")
    if not isinstance(entries, list):
        raise ManifestError(f"{path}: 'cache_domains' is not a list")
    return [CacheDomain.from_json(i, e) for i, e in enumerate(entries)]


def normalize_pattern(line: str) -> Optional[str]:
    """Turn one line of a domain file into a regex alternative.

    Everything from the first ``#`` on is a comment. What remains is trimmed;
    empty lines give ``None``. ``.`` is literal and ``*`` matches any sequence.
    """
    hostname = line.split("#", 1)[0].strip()
    if not hostname:
        return None
    return hostname.replace(".", "\\.").replace("*", ".*")


def read_patterns(dataset_dir: StrPath, domain_file: str) -> list[str]:
    path = os.path.join(dataset_dir, domain_file)
    try:
        with open(path, encoding="utf-8", newline="") as f:
            content = f.read()
    except OSError as e:
        raise DomainFileError(domain_file, e.strerror or str(e)) from e
    except UnicodeDecodeError as e:
        raise DomainFileError(domain_file, str(e)) from e
    patterns = []
    for line in content.split("\n"):
        pattern = normalize_pattern(line)
        if pattern is not None:
            patterns.append(pattern)
    logging.debug("%s: %d patterns", domain_file, len(patterns))
    return patterns


def compile_category(dataset_dir: StrPath, category: CacheDomain) -> CompiledDomain:
    patterns = []
    for domain_file in category.domain_files:
        patterns.extend(read_patterns(dataset_dir, domain_file))
    if not patterns:
        logging.warning("no patterns|%s", category.name)
    return CompiledDomain(
        category.name, category.description, "^({})$".format("|".join(patterns))
    )


def render(compiled: list[CompiledDomain]) -> str:
    parts = [PREAMBLE]
    for c in compiled:
        parts.append(
            BRANCH.format(pattern=c.pattern, description=c.description, name=c.name)
        )
    parts.append(EPILOGUE)
    return "".join(parts)


def compile_dataset(dataset_dir: StrPath) -> str:
    categories = load_manifest(dataset_dir)
    logging.info("Compiling %d cache domains", len(categories))
    return render([compile_category(dataset_dir, c) for c in categories])


def write_output(vcl: str, path: StrPath) -> None:
    tmp_path = f"{os.fspath(path)}.tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(vcl)
        os.replace(tmp_path, path)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise OutputError(f"Unable to write {path}: {e.strerror or e}") from e
    logging.debug("Wrote %s", path)
