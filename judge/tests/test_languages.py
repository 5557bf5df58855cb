"""Tests for the language profile registry."""

import pytest


class TestRegistry:
    def test_closed_set(self):
        from judge.languages import build_registry

        assert set(build_registry()) == {"python", "cpp", "java"}

    @pytest.mark.parametrize(
        "alias,expected",
        [("py", "python"), ("Python3", "python"), (" c++ ", "cpp"), ("CPP", "cpp"), ("java", "java")],
    )
    def test_aliases(self, alias, expected):
        from judge.languages import get_profile

        assert get_profile(alias).id == expected

    @pytest.mark.parametrize("language", ["javascript", "", None, "rust", "c"])
    def test_unsupported_rejected(self, language):
        from judge.errors import UnsupportedLanguageError
        from judge.languages import get_profile

        with pytest.raises(UnsupportedLanguageError):
            get_profile(language)

    def test_compiled_languages_have_compile_command(self):
        from judge.languages import build_registry

        registry = build_registry()
        assert not registry["python"].compiled
        assert registry["cpp"].compiled
        assert registry["java"].compiled
        assert registry["java"].run_timeout_ms == 15000
        assert registry["cpp"].run_timeout_ms == 8000

    def test_stage_budget_sums_compile_and_run(self):
        from judge.languages import build_registry

        registry = build_registry()
        assert registry["python"].stage_budget_ms() == 8000
        assert registry["java"].stage_budget_ms() == 15000 + 15000
        assert registry["cpp"].stage_budget_ms(run_timeout_ms=2000) == 15000 + 2000

    def test_compile_commands_echo_sentinel(self):
        from judge.languages import COMPILE_SENTINEL, build_registry

        registry = build_registry()
        cpp = " ".join(registry["cpp"].compile_command("main.cpp"))
        java = " ".join(registry["java"].compile_command("Main.java"))
        assert "g++ -O2 -std=c++17 main.cpp" in cpp
        assert cpp.endswith(f"&& echo {COMPILE_SENTINEL}")
        assert "javac" in java and java.endswith(f"&& echo {COMPILE_SENTINEL}")

    def test_images_follow_settings(self, monkeypatch):
        from judge.config import get_settings
        from judge.languages import build_registry

        monkeypatch.setenv("CPP_IMAGE", "gcc:13")
        assert build_registry(get_settings())["cpp"].image == "gcc:13"


class TestEntryPoint:
    def test_java_public_class(self):
        from judge.languages import get_profile, resolve_entry_point

        src = "import java.util.*;\npublic class Solution {\n public static void main(String[] a) {}\n}"
        assert resolve_entry_point(get_profile("java"), src) == ("Solution.java", "Solution")

    def test_java_defaults_to_main(self):
        from judge.languages import get_profile, resolve_entry_point

        assert resolve_entry_point(get_profile("java"), "class X {}") == ("Main.java", "Main")

    def test_java_run_command_targets_class(self):
        from judge.languages import get_profile

        cmd = get_profile("java").run_command("Solution")
        assert cmd[0] == "java"
        assert cmd[-1] == "Solution"
        assert "-Xmx256m" in cmd

    def test_python_uses_fixed_filename(self):
        from judge.languages import get_profile, resolve_entry_point

        profile = get_profile("python")
        filename, target = resolve_entry_point(profile, "print(1)")
        assert filename == "main.py"
        assert profile.run_command(target) == ["python", "main.py"]


def test_list_languages_metadata():
    from judge.languages import list_languages

    langs = {entry["id"]: entry for entry in list_languages()}
    assert langs["cpp"]["compiled"] is True
    assert langs["python"]["compiled"] is False
    assert "py" in langs["python"]["aliases"]
