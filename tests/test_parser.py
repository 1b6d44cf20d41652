"""Tests for the image reference parser."""

import pytest

from regtags.registry.parser import ImageRef, parse_image_ref

DIGEST = "sha256:" + "a" * 64


class TestParseDockerHubReferences:
    """Test references that resolve to Docker Hub."""

    def test_bare_image_name(self):
        ref = parse_image_ref("nginx")
        assert ref == ImageRef("docker.io", "library/nginx")

    def test_bare_image_with_tag(self):
        ref = parse_image_ref("nginx:alpine")
        assert ref == ImageRef("docker.io", "library/nginx", tag="alpine")

    def test_user_image(self):
        ref = parse_image_ref("nginxinc/nginx-unprivileged:stable")
        assert ref == ImageRef(
            "docker.io", "nginxinc/nginx-unprivileged", tag="stable"
        )

    def test_explicit_docker_hub_aliases(self):
        for domain in ("docker.io", "index.docker.io", "registry-1.docker.io"):
            ref = parse_image_ref(f"{domain}/nginx")
            assert ref == ImageRef("docker.io", "library/nginx")


class TestParsePrivateRegistries:
    """Test references that name their registry."""

    def test_private_registry(self):
        ref = parse_image_ref("myregistry.example.com/org/image:v1.0")
        assert ref == ImageRef("myregistry.example.com", "org/image", tag="v1.0")

    def test_registry_with_port_and_no_tag(self):
        ref = parse_image_ref("localhost:5000/app")
        assert ref == ImageRef("localhost:5000", "app")

    def test_registry_with_port_and_tag(self):
        ref = parse_image_ref("localhost:5000/team/app:1.2.3")
        assert ref.domain == "localhost:5000"
        assert ref.path == "team/app"
        assert ref.tag == "1.2.3"

    def test_localhost_without_port(self):
        ref = parse_image_ref("localhost/app")
        assert ref == ImageRef("localhost", "app")

    def test_digest(self):
        ref = parse_image_ref(f"ghcr.io/org/tool@{DIGEST}")
        assert ref == ImageRef("ghcr.io", "org/tool", digest=DIGEST)

    def test_tag_and_digest(self):
        ref = parse_image_ref(f"ghcr.io/org/tool:v1@{DIGEST}")
        assert ref.tag == "v1"
        assert ref.digest == DIGEST


class TestImageRef:
    """Test ImageRef properties."""

    def test_name(self):
        ref = ImageRef("docker.io", "library/nginx", tag="latest")
        assert ref.name == "docker.io/library/nginx"

    def test_str_prefers_digest(self):
        ref = ImageRef("ghcr.io", "org/tool", tag="v1", digest=DIGEST)
        assert str(ref) == f"ghcr.io/org/tool@{DIGEST}"

    def test_str_without_tag(self):
        ref = ImageRef("docker.io", "library/nginx")
        assert str(ref) == "docker.io/library/nginx"

    def test_str_with_tag(self):
        assert str(ImageRef("quay.io", "org/app", tag="v2")) == "quay.io/org/app:v2"


class TestInvalidReferences:
    """Test that malformed references raise ValueError."""

    @pytest.mark.parametrize(
        "value",
        [
            "",
            " nginx",
            "Nginx",
            "nginx:",
            "nginx:bad tag",
            "nginx:\u00e9",
            "nginx:v1\u0661",
            "org//image",
            "registry.example.com/",
            "nginx@sha256:abc",
            "nginx@notadigest",
            "-bad/image",
        ],
    )
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_image_ref(value)
