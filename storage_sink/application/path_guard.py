"""Path validation and normalization for storage keys.

Caller paths are resolved lexically, segment by segment, against a flat key
namespace. Nothing here touches the filesystem or os.path: a ".." that would
climb above the root is an error, never something to resolve away.
"""

from typing import Any

from storage_sink.domain.exceptions import InvalidArgumentError, PathTraversalError

SEPARATOR = "/"


def require_string(value: Any, argument: str) -> str:
    """Return value if it is a str; raise InvalidArgumentError otherwise."""
    if not isinstance(value, str):
        raise InvalidArgumentError("Argument must be a String", argument=argument)
    return value


class PathGuard:
    """Turns caller-supplied paths into namespace-confined storage keys."""

    @staticmethod
    def normalize(raw_path: Any) -> str:
        """Validate and canonicalize a POSIX-style path.

        Leading "/", "//" and "./" anchor at the storage root and are
        stripped. Empty and "." segments are dropped, ".." pops the previous
        segment.

        Args:
            raw_path: Path as given by the caller.

        Returns:
            Canonical relative key ("" for the root itself).

        Raises:
            InvalidArgumentError: raw_path is not a string.
            PathTraversalError: A ".." segment would ascend above the root.
        """
        path = require_string(raw_path, "path")
        stack: list[str] = []
        for segment in path.split(SEPARATOR):
            if segment in ("", "."):
                continue
            if segment == "..":
                if not stack:
                    raise PathTraversalError(path)
                stack.pop()
                continue
            stack.append(segment)
        return SEPARATOR.join(stack)

    @staticmethod
    def join(root: str, relative: str) -> str:
        """Place a normalized relative key under a normalized root prefix."""
        if not root:
            return relative
        if not relative:
            return root
        return f"{root}{SEPARATOR}{relative}"

    @staticmethod
    def is_within(key: str, prefix: str) -> bool:
        """Return True if prefix is key itself or a whole-segment ancestor of it.

        "dir/a" contains "dir/a" and "dir/a/b" but not "dir/ab". The empty
        prefix contains every key.
        """
        if not prefix:
            return True
        return key == prefix or key.startswith(prefix + SEPARATOR)
