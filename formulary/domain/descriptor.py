"""
Descriptor domain object for formulary.

A Descriptor is the immutable record of one package: what it is, where
its source lives, what it depends on, which files it installs and how
to check that the install works. It is built once from a formula file
and never mutated.
"""

import re
import string
from dataclasses import dataclass, field, replace
from pathlib import PurePosixPath
from typing import Optional, Dict, Any, FrozenSet, Tuple, List

from ..errors import DescriptorError


NAME_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._+-]*$')

ARCHIVE_SUFFIXES = ('.tar.gz', '.tgz', '.tar.bz2', '.tbz2', '.tar.xz', '.txz', '.tar', '.zip')

DEFAULT_TEST_ARGS = ("{bin}/{name}", "--version")
DEFAULT_TEST_EXPECT = "{name} v{version}"

TEMPLATE_FIELDS = frozenset({"bin", "prefix", "name", "version"})


def is_archive_url(url: str) -> bool:
    """True for http(s) URLs that point at a tarball or zip."""
    lowered = url.lower().split('?', 1)[0]
    return lowered.startswith(('http://', 'https://')) and lowered.endswith(ARCHIVE_SUFFIXES)


@dataclass(frozen=True)
class SourceLocation:
    """
    Where a package's source lives.

    Git sources are selected by exactly one of tag, branch or revision.
    Archive sources take no selector and are pinned by sha256.
    """
    url: str
    branch: Optional[str] = None
    tag: Optional[str] = None
    revision: Optional[str] = None
    sha256: Optional[str] = None

    def __post_init__(self):
        if not self.url:
            raise DescriptorError("source url must not be empty")

        selectors = [s for s in (self.tag, self.branch, self.revision) if s]
        if self.is_archive:
            if selectors:
                raise DescriptorError(
                    f"archive source {self.url} cannot take a tag, branch or revision"
                )
            if self.sha256 and not re.fullmatch(r'[0-9a-fA-F]{64}', self.sha256):
                raise DescriptorError(f"invalid sha256 for {self.url}: {self.sha256}")
        elif len(selectors) != 1:
            raise DescriptorError(
                f"git source {self.url} needs exactly one of tag, branch or revision "
                f"(got {len(selectors)})"
            )

    @property
    def is_archive(self) -> bool:
        return is_archive_url(self.url)

    @property
    def is_head(self) -> bool:
        """A branch-tracking source: the resolved content moves over time."""
        return not self.is_archive and bool(self.branch)

    @property
    def selector(self) -> str:
        """Human readable description of what is being fetched."""
        if self.tag:
            return f"tag:{self.tag}"
        if self.branch:
            return f"branch:{self.branch}"
        if self.revision:
            return f"revision:{self.revision}"
        if self.sha256:
            return f"sha256:{self.sha256}"
        return "archive"

    @classmethod
    def from_value(cls, value: Any) -> 'SourceLocation':
        """Build from a plain URL string or a mapping with url + selector."""
        if isinstance(value, SourceLocation):
            return value
        if isinstance(value, str):
            return cls(url=value)
        if not isinstance(value, dict):
            raise DescriptorError(f"source must be a URL or a mapping, got {type(value).__name__}")
        unknown = set(value) - {'url', 'branch', 'tag', 'revision', 'sha256'}
        if unknown:
            raise DescriptorError(f"unknown source keys: {', '.join(sorted(unknown))}")
        return cls(
            url=str(value.get('url') or ''),
            branch=value.get('branch'),
            tag=value.get('tag'),
            revision=value.get('revision'),
            sha256=value.get('sha256'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'url': self.url}
        for key in ('branch', 'tag', 'revision', 'sha256'):
            value = getattr(self, key)
            if value:
                result[key] = value
        return result


def _check_placeholders(template: str) -> None:
    """Reject placeholders other than TEMPLATE_FIELDS, and unbalanced braces."""
    try:
        fields = [f for _, f, _, _ in string.Formatter().parse(template) if f is not None]
    except ValueError as e:
        raise DescriptorError(f"invalid test template {template!r}: {e} (use {{{{ and }}}} for literal braces)") from e
    for field_name in fields:
        if field_name not in TEMPLATE_FIELDS:
            raise DescriptorError(
                f"unknown placeholder {{{field_name}}} in test template {template!r}; "
                f"allowed: {', '.join(sorted(TEMPLATE_FIELDS))} (use {{{{ and }}}} for literal braces)"
            )


@dataclass(frozen=True)
class TestCommand:
    """
    Post-install smoke test: an argv template and the output it must show.

    Templates may use {bin}, {prefix}, {name} and {version}; write {{ and }}
    for literal braces. A regex expectation is used as written, since
    braces are regex syntax.
    """
    __test__ = False  # not a pytest test class

    args: Tuple[str, ...] = DEFAULT_TEST_ARGS
    expect: str = DEFAULT_TEST_EXPECT
    regex: bool = False

    def __post_init__(self):
        if not self.args:
            raise DescriptorError("test args must not be empty")
        templates = list(self.args) if self.regex else [*self.args, self.expect]
        for template in templates:
            _check_placeholders(template)
        if self.regex:
            try:
                re.compile(self.expect)
            except re.error as e:
                raise DescriptorError(f"invalid test pattern {self.expect!r}: {e}") from e

    def render(self, context: Dict[str, str]) -> Tuple[List[str], str]:
        """Expand the templates. Returns (argv, expected)."""
        try:
            argv = [arg.format(**context) for arg in self.args]
            expected = self.expect if self.regex else self.expect.format(**context)
        except (KeyError, IndexError, ValueError, AttributeError) as e:
            raise DescriptorError(f"bad test template: {e}") from e
        return argv, expected

    @classmethod
    def from_value(cls, value: Any) -> 'TestCommand':
        if isinstance(value, TestCommand):
            return value
        if value is True or value == {}:
            return cls()
        if not isinstance(value, dict):
            raise DescriptorError("test must be a mapping with args/expect")
        args = value.get('args', DEFAULT_TEST_ARGS)
        if isinstance(args, str):
            args = args.split()
        return cls(
            args=tuple(str(a) for a in args),
            expect=str(value.get('expect', DEFAULT_TEST_EXPECT)),
            regex=bool(value.get('regex', False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'args': list(self.args), 'expect': self.expect, 'regex': self.regex}


@dataclass(frozen=True)
class InstallEntry:
    """A file from the fetched tree that lands in the bin directory."""
    source: str
    target: Optional[str] = None

    def __post_init__(self):
        path = PurePosixPath(self.source.replace('\\', '/'))
        if not self.source or path.is_absolute() or '..' in path.parts:
            raise DescriptorError(f"install source must be a relative path inside the tree: {self.source!r}")
        if self.target is not None and ('/' in self.target or self.target in ('', '.', '..')):
            raise DescriptorError(f"install target must be a plain file name: {self.target!r}")

    @property
    def target_name(self) -> str:
        return self.target or PurePosixPath(self.source).name

    @classmethod
    def from_value(cls, value: Any) -> 'InstallEntry':
        if isinstance(value, InstallEntry):
            return value
        if isinstance(value, str):
            return cls(source=value)
        if isinstance(value, dict) and 'source' in value:
            return cls(source=str(value['source']), target=value.get('target'))
        raise DescriptorError(f"invalid binaries entry: {value!r}")

    def to_dict(self) -> Dict[str, Any]:
        if self.target:
            return {'source': self.source, 'target': self.target}
        return {'source': self.source}


@dataclass(frozen=True)
class Descriptor:
    """
    Immutable package descriptor.

    Example:
        descriptor = Descriptor.from_dict({
            "name": "mxp",
            "version": "0.4.0",
            "source": {"url": "https://github.com/agzam/emacs-piper.git", "branch": "main"},
            "dependencies": ["emacs"],
        })
        descriptor.source.is_head   # True
    """
    name: str
    version: str
    source: SourceLocation
    description: str = ""
    homepage: Optional[str] = None
    license: Optional[str] = None
    dependencies: FrozenSet[str] = frozenset()
    caveats: Optional[str] = None
    test: Optional[TestCommand] = None
    binaries: Tuple[InstallEntry, ...] = ()
    head: Optional[SourceLocation] = None

    def __post_init__(self):
        if not self.name or not NAME_PATTERN.match(self.name):
            raise DescriptorError(f"invalid package name: {self.name!r}")
        if not self.version or not str(self.version).strip():
            raise DescriptorError(f"{self.name}: version must not be empty")
        if self.head is not None and not self.head.is_head:
            raise DescriptorError(f"{self.name}: head source must be a git branch")
        if self.name in self.dependencies:
            raise DescriptorError(f"{self.name}: package cannot depend on itself")
        if not self.binaries:
            object.__setattr__(self, 'binaries', (InstallEntry(self.name),))
        targets = [entry.target_name for entry in self.binaries]
        if len(set(targets)) != len(targets):
            raise DescriptorError(f"{self.name}: duplicate install targets")

    @property
    def pinned(self) -> bool:
        """True when the stable source resolves to reproducible content."""
        if self.source.is_archive:
            return bool(self.source.sha256)
        return not self.source.is_head

    def with_head(self) -> 'Descriptor':
        """Copy of this descriptor that installs from the head source."""
        if self.head is None:
            raise DescriptorError(f"{self.name} has no head source")
        return replace(self, source=self.head)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Descriptor':
        """Build a descriptor from a parsed formula file."""
        if not isinstance(data, dict):
            raise DescriptorError("formula must be a mapping")
        if 'source' not in data:
            raise DescriptorError(f"{data.get('name', '<unnamed>')}: missing source")

        dependencies = data.get('dependencies') or []
        if isinstance(dependencies, str):
            dependencies = [dependencies]

        test = data.get('test')
        head = data.get('head')

        return cls(
            name=str(data.get('name') or ''),
            version=str(data.get('version') or ''),
            source=SourceLocation.from_value(data['source']),
            description=str(data.get('description') or ''),
            homepage=data.get('homepage'),
            license=data.get('license'),
            dependencies=frozenset(str(d) for d in dependencies),
            caveats=data.get('caveats'),
            test=TestCommand.from_value(test) if test else None,
            binaries=tuple(InstallEntry.from_value(b) for b in data.get('binaries') or ()),
            head=SourceLocation.from_value(head) if head else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = {
            'name': self.name,
            'version': self.version,
            'description': self.description,
            'source': self.source.to_dict(),
            'pinned': self.pinned,
            'dependencies': sorted(self.dependencies),
            'binaries': [b.to_dict() for b in self.binaries],
        }
        if self.homepage:
            result['homepage'] = self.homepage
        if self.license:
            result['license'] = self.license
        if self.head:
            result['head'] = self.head.to_dict()
        if self.caveats:
            result['caveats'] = self.caveats
        if self.test:
            result['test'] = self.test.to_dict()
        return result
