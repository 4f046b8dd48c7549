"""Unit tests for the diagram data model."""

from __future__ import annotations

from pathlib import Path

import pytest

from kroki_embed.config import KrokiConfig
from kroki_embed.errors import UnsupportedDiagramTypeError
from kroki_embed.models import (
    DiagramSource,
    DiagramType,
    EmbedMode,
    EmbedOptions,
    Embedding,
    parse_opts,
)


@pytest.mark.unit
@pytest.mark.core
class TestDiagramType:
    """Test DiagramType parsing."""

    @pytest.mark.parametrize(
        "name",
        ["plantuml", "vega", "vegalite", "packetdiag", "rackdiag", "wavedrom", "bytefield", "bpmn"],
    )
    def test_registered_block_names(self, name: str) -> None:
        assert DiagramType.parse(name).path_segment == name

    def test_every_type_has_path_segment(self) -> None:
        assert {t.path_segment for t in DiagramType} == {t.value for t in DiagramType}

    def test_case_and_whitespace_ignored(self) -> None:
        assert DiagramType.parse("  PlantUML ") is DiagramType.PLANTUML

    def test_alias(self) -> None:
        assert DiagramType.parse("dot") is DiagramType.GRAPHVIZ

    def test_passthrough(self) -> None:
        assert DiagramType.parse(DiagramType.VEGA) is DiagramType.VEGA

    def test_unknown_type(self) -> None:
        with pytest.raises(UnsupportedDiagramTypeError, match="flowchartz"):
            DiagramType.parse("flowchartz")

    def test_unknown_type_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            DiagramType.parse("")


@pytest.mark.unit
@pytest.mark.core
class TestDiagramSource:
    """Test DiagramSource construction."""

    def test_from_text_encodes_utf8(self) -> None:
        source = DiagramSource.from_text("plantuml", "Bob -> Alice : héllo", "SVG")
        assert source.text == "Bob -> Alice : héllo".encode()
        assert source.output_format == "svg"
        assert source.type is DiagramType.PLANTUML

    def test_from_file_reads_bytes_verbatim(self, tmp_path: Path) -> None:
        diagram = tmp_path / "alice.puml"
        diagram.write_bytes(b"alice -> bob\r\n")
        source = DiagramSource.from_file("plantuml", diagram, "png")
        assert source.text == b"alice -> bob\r\n"

    def test_from_file_checks_type_before_reading(self, tmp_path: Path) -> None:
        with pytest.raises(UnsupportedDiagramTypeError):
            DiagramSource.from_file("nope", tmp_path / "missing.txt", "svg")

    def test_from_file_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            DiagramSource.from_file("plantuml", tmp_path / "missing.puml", "svg")

    @pytest.mark.asyncio
    async def test_afrom_file_reads_bytes_verbatim(self, tmp_path: Path) -> None:
        diagram = tmp_path / "alice.puml"
        diagram.write_bytes(b"alice -> bob\r\n")
        source = await DiagramSource.afrom_file("plantuml", diagram, "png")
        assert source.text == b"alice -> bob\r\n"
        assert source.output_format == "png"

    @pytest.mark.asyncio
    async def test_afrom_file_checks_type_before_reading(self, tmp_path: Path) -> None:
        with pytest.raises(UnsupportedDiagramTypeError):
            await DiagramSource.afrom_file("nope", tmp_path / "missing.txt", "svg")

    def test_immutable(self) -> None:
        source = DiagramSource.from_text("vega", "{}", "svg")
        with pytest.raises(AttributeError):
            source.text = b"changed"  # type: ignore[misc]

    def test_mime_types(self) -> None:
        assert DiagramSource.from_text("vega", "{}", "svg").mime_type == "image/svg+xml"
        assert DiagramSource.from_text("vega", "{}", "png").mime_type == "image/png"
        assert (
            DiagramSource.from_text("vega", "{}", "webp").mime_type
            == "application/octet-stream"
        )


@pytest.mark.unit
@pytest.mark.core
class TestEmbedOptions:
    """Test EmbedOptions built from config and block attributes."""

    def test_parse_opts(self) -> None:
        assert parse_opts("inline, Interactive") == {"inline", "interactive"}
        assert parse_opts(None) == set()
        assert parse_opts(["inline", ""]) == {"inline"}

    def test_defaults(self) -> None:
        options = EmbedOptions.from_config(KrokiConfig())
        assert options == EmbedOptions()

    def test_from_config(self) -> None:
        config = KrokiConfig(
            fetch_diagram=True, imagesdir="images", data_uri=True, allow_uri_read=True
        )
        options = EmbedOptions.from_config(config, opts="inline", target_name="seq")
        assert options.fetch_and_cache is True
        assert options.inline is True
        assert options.interactive is False
        assert options.target_name == "seq"
        assert options.images_dir == "images"
        assert options.data_uri is True

    def test_empty_target_name_is_none(self) -> None:
        options = EmbedOptions.from_config(KrokiConfig(), target_name="")
        assert options.target_name is None

    def test_data_uri_requires_allow_uri_read(self) -> None:
        options = EmbedOptions.from_config(KrokiConfig(data_uri=True))
        assert options.data_uri is False


@pytest.mark.unit
@pytest.mark.core
def test_embedding_to_dict() -> None:
    embedding = Embedding(
        mode=EmbedMode.LOCAL,
        value="images/seq.svg",
        format="svg",
        alt="seq",
        roles=["kroki"],
        mime_type="image/svg+xml",
    )
    assert embedding.is_image
    assert embedding.to_dict() == {
        "mode": "local",
        "value": "images/seq.svg",
        "format": "svg",
        "alt": "seq",
        "roles": ["kroki"],
        "mime_type": "image/svg+xml",
    }
