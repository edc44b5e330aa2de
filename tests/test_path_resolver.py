"""
Tests for path resolution, including symlinks inside image trees.
"""

import os

import pytest
from conftest import RecordingTarget

from ldapbind.domain.errors import ExecutionError
from ldapbind.infrastructure.path_resolver import PathResolver


class TestImageRoot:
    """Test image root inference from the images prefix."""

    def test_path_inside_image(self):
        resolver = PathResolver("/cm/images")
        assert resolver.image_root_for("/cm/images/default-image/etc/nslcd.conf") == "/cm/images/default-image"

    def test_host_path(self):
        assert PathResolver("/cm/images").image_root_for("/etc/nslcd.conf") is None

    def test_prefix_itself(self):
        assert PathResolver("/cm/images/").image_root_for("/cm/images/") is None

    def test_similar_prefix_not_matched(self):
        assert PathResolver("/cm/images").image_root_for("/cm/images-old/x/etc/a") is None


class TestResolve:
    """Test resolve() on real files in tmp_path."""

    def setup_method(self):
        self.target = RecordingTarget("head1")

    def test_regular_file_unchanged(self, tmp_path):
        conf = tmp_path / "a.conf"
        conf.write_text("x")
        resolver = PathResolver(str(tmp_path / "images"))
        assert resolver.resolve(self.target, str(conf)) == str(conf)

    def test_missing_file_unchanged(self, tmp_path):
        resolver = PathResolver(str(tmp_path / "images"))
        assert resolver.resolve(self.target, str(tmp_path / "none")) == str(tmp_path / "none")

    def test_resolution_is_idempotent(self, tmp_path):
        real = tmp_path / "real.conf"
        real.write_text("x")
        link = tmp_path / "link.conf"
        link.symlink_to(real)
        resolver = PathResolver(str(tmp_path / "images"))

        once = resolver.resolve(self.target, str(link))
        assert resolver.resolve(self.target, once) == once

    def test_absolute_link_in_image_is_rerooted(self, tmp_path):
        """R/etc/x.conf -> /etc/y.conf resolves to R/etc/y.conf, not the host file."""
        root = tmp_path / "images" / "img"
        (root / "etc").mkdir(parents=True)
        (root / "etc" / "y.conf").write_text("image copy")
        os.symlink("/etc/y.conf", root / "etc" / "x.conf")
        resolver = PathResolver(str(tmp_path / "images"))

        resolved = resolver.resolve(self.target, str(root / "etc" / "x.conf"))

        assert resolved == str(root / "etc" / "y.conf")

    def test_explicit_image_root(self, tmp_path):
        root = tmp_path / "somewhere" / "img"
        (root / "etc").mkdir(parents=True)
        os.symlink("/etc/y.conf", root / "etc" / "x.conf")
        resolver = PathResolver("/cm/images")

        resolved = resolver.resolve(self.target, str(root / "etc" / "x.conf"), image_root=str(root))

        assert resolved == str(root / "etc" / "y.conf")

    def test_relative_link_in_image(self, tmp_path):
        root = tmp_path / "images" / "img"
        (root / "etc" / "openldap").mkdir(parents=True)
        (root / "etc" / "ldap.conf").write_text("x")
        os.symlink("../ldap.conf", root / "etc" / "openldap" / "ldap.conf")
        resolver = PathResolver(str(tmp_path / "images"))

        resolved = resolver.resolve(self.target, str(root / "etc" / "openldap" / "ldap.conf"))

        assert resolved == str(root / "etc" / "ldap.conf")

    def test_chain_in_image(self, tmp_path):
        """Each hop of a chain is re-rooted."""
        root = tmp_path / "images" / "img"
        (root / "etc").mkdir(parents=True)
        (root / "etc" / "c.conf").write_text("x")
        os.symlink("/etc/b.conf", root / "etc" / "a.conf")
        os.symlink("/etc/c.conf", root / "etc" / "b.conf")
        resolver = PathResolver(str(tmp_path / "images"))

        assert resolver.resolve(self.target, str(root / "etc" / "a.conf")) == str(root / "etc" / "c.conf")

    def test_dangling_link_in_image_returns_missing_path(self, tmp_path):
        root = tmp_path / "images" / "img"
        (root / "etc").mkdir(parents=True)
        os.symlink("/etc/gone.conf", root / "etc" / "x.conf")
        resolver = PathResolver(str(tmp_path / "images"))

        resolved = resolver.resolve(self.target, str(root / "etc" / "x.conf"))

        assert resolved == str(root / "etc" / "gone.conf")
        assert not self.target.is_file(resolved)

    def test_link_loop_raises(self, tmp_path):
        root = tmp_path / "images" / "img"
        (root / "etc").mkdir(parents=True)
        os.symlink("/etc/b.conf", root / "etc" / "a.conf")
        os.symlink("/etc/a.conf", root / "etc" / "b.conf")
        resolver = PathResolver(str(tmp_path / "images"))

        with pytest.raises(ExecutionError):
            resolver.resolve(self.target, str(root / "etc" / "a.conf"))

    def test_host_symlink_uses_host_resolution(self, tmp_path):
        real = tmp_path / "real.conf"
        real.write_text("x")
        link = tmp_path / "link.conf"
        link.symlink_to(real)
        resolver = PathResolver(str(tmp_path / "images"))

        assert resolver.resolve(self.target, str(link)) == os.path.realpath(real)
