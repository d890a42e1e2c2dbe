"""Tests for rk.output.console module."""

from __future__ import annotations

import threading

from rk.output.console import ConsoleProtocol, MockConsole, PrefixedConsole, RichConsole, Style


class TestStyle:
    def test_str_conversion(self) -> None:
        assert str(Style.SUCCESS) == "success"
        assert str(Style.DIM) == "dim"

    def test_all_styles_exist(self) -> None:
        expected = {"DEFAULT", "SUCCESS", "ERROR", "WARNING", "INFO", "DIM", "BOLD", "HEADER"}
        assert {s.name for s in Style} == expected


class TestMockConsole:
    def test_print_captures_message(self) -> None:
        console = MockConsole()
        console.print("hello", Style.DIM)
        assert console.outputs[0].message == "hello"
        assert console.outputs[0].style == Style.DIM

    def test_error_is_detected(self) -> None:
        console = MockConsole()
        console.success("built")
        assert console.has_error() is False
        console.error("push failed")
        assert console.has_error() is True
        assert console.find("push failed")[0].style == Style.ERROR

    def test_concurrent_writes_are_all_kept(self) -> None:
        console = MockConsole()

        def worker(n: int) -> None:
            for i in range(200):
                console.print(f"{n}-{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(console.outputs) == 800


class TestPrefixedConsole:
    def test_prefixes_every_kind_of_line(self) -> None:
        inner = MockConsole()
        console = PrefixedConsole(inner, "image")

        console.print("docker buildx build", Style.DIM)
        console.success("linux/amd64")
        console.error("linux/arm64")

        assert inner.messages == [
            "image: docker buildx build",
            "OK image: linux/amd64",
            "error: image: linux/arm64",
        ]
        assert inner.outputs[0].style == Style.DIM


def test_consoles_satisfy_protocol() -> None:
    consoles: list[ConsoleProtocol] = [MockConsole(), PrefixedConsole(MockConsole(), "x")]
    assert len(consoles) == 2


def test_rich_console_escapes_markup(capsys) -> None:  # type: ignore[no-untyped-def]
    console = RichConsole()
    console.print("[release] v1.0.0")
    out = capsys.readouterr().out
    assert "[release] v1.0.0" in out
