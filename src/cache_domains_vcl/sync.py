import logging
import os
import shutil
import subprocess
from typing import override

import requests

from .lib import MANIFEST_FILE, CacheDomainsError, ManifestError, load_manifest

REPO_DIR = "repo"


class SetupError(CacheDomainsError):
    pass


class SyncError(CacheDomainsError):
    pass


class BaseSync:
    def sync(self, source: str, destination: str) -> bool:
        raise NotImplementedError


class GitSync(BaseSync):
    git: str

    def __init__(self, git: str = "git"):
        self.git = git

    def __run(self, args: list[str], cwd: str | None = None) -> bool:
        logging.debug("%s %s", self.git, " ".join(args))
        try:
            result = subprocess.run([self.git, *args], cwd=cwd)
        except OSError:
            logging.exception("failed to execute %s", self.git)
            return False
        return result.returncode == 0

    @override
    def sync(self, source: str, destination: str) -> bool:
        if os.path.exists(destination):
            logging.info("repo directory exists, trying git pull")
            if self.__run(["pull"], cwd=destination):
                return True
            logging.warning("git pull failed")
            try:
                shutil.rmtree(destination)
            except OSError:
                logging.exception("unable to clear %s", destination)
                return False
        logging.info("trying git clone")
        if not self.__run(["clone", source, destination]):
            logging.error("git clone failed")
            return False
        return True


class HttpSync(BaseSync):
    """Mirror a dataset from a raw-file base URL, e.g.
    https://raw.githubusercontent.com/uklans/cache-domains/master
    """

    timeout: float

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    def __download(self, url: str, path: str) -> bool:
        logging.info("Downloading %s", url)
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException:
            logging.exception("download failed|%s", url)
            return False
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(path, "wb") as f:
                f.write(response.content)
        except OSError:
            logging.exception("unable to save|%s", path)
            return False
        return True

    @override
    def sync(self, source: str, destination: str) -> bool:
        base = source.rstrip("/")
        manifest_path = os.path.join(destination, MANIFEST_FILE)
        if not self.__download(f"{base}/{MANIFEST_FILE}", manifest_path):
            return False
        try:
            categories = load_manifest(destination)
        except ManifestError as e:
            logging.error("bad manifest|%s|%s", source, e)
            return False
        root = os.path.realpath(destination)
        for category in categories:
            for domain_file in category.domain_files:
                path = os.path.realpath(os.path.join(destination, domain_file))
                if os.path.commonpath([root, path]) != root:
                    logging.error("domain file outside %s|%s", destination, domain_file)
                    return False
                if not self.__download(f"{base}/{domain_file}", path):
                    return False
        return True


def prepare_work_dir(work_dir: str) -> str:
    try:
        os.makedirs(work_dir, exist_ok=True)
    except OSError as e:
        raise SetupError(f"Unable to create {work_dir}: {e.strerror or e}") from e
    return os.path.join(work_dir, REPO_DIR)


def sync_dataset(syncer: BaseSync, source: str, destination: str) -> None:
    if not syncer.sync(source, destination):
        raise SyncError(f"Unable to sync {source} into {destination}")
