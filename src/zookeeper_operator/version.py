"""Build metadata for the zookeeper operator."""

import os
import platform

__version__ = "0.2.15"

GIT_SHA = os.getenv("GIT_SHA", "unknown")


def build_info():
    """ Collect build metadata reported by ``--version``.
    """
    return {
        "version": __version__,
        "git_sha": GIT_SHA,
        "python_version": platform.python_version(),
        "platform": f"{platform.system().lower()}/{platform.machine()}",
    }
