"""Tests for remote path resolution."""

import re

import pytest

from callredact.remote.paths import (
    TEMP_PREFIX,
    build_target_path,
    resolve_remote_path,
    temp_path_for,
)

BASE = "/var/spool/asterisk/monitor"


class TestBuildTargetPath:
    def test_dated_name_goes_to_dated_folder(self):
        path = build_target_path("out-1001-2002-20240131-154500-1706715900.12.wav", BASE)
        assert path == f"{BASE}/2024/01/31/out-1001-2002-20240131-154500-1706715900.12.wav"

    def test_monitor_prefix_is_stripped(self):
        path = build_target_path("monitor/q-500-20231105-080000-1.wav", BASE)
        assert path == f"{BASE}/2023/11/05/q-500-20231105-080000-1.wav"

    def test_missing_extension_defaults_to_wav(self):
        path = build_target_path("in-1-2-20240201-101010-99", BASE)
        assert path == f"{BASE}/2024/02/01/in-1-2-20240201-101010-99.wav"

    def test_undated_name_goes_under_base(self):
        assert build_target_path("adhoc/call.wav", BASE) == f"{BASE}/adhoc/call.wav"

    def test_trailing_slash_on_base(self):
        assert build_target_path("call.wav", BASE + "/") == f"{BASE}/call.wav"

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            build_target_path("", BASE)


class TestResolveRemotePath:
    def test_absolute_path_unchanged(self):
        assert resolve_remote_path("/srv/rec/call.wav", BASE) == "/srv/rec/call.wav"

    def test_path_already_under_base_gets_root(self):
        path = "var/spool/asterisk/monitor/2024/01/31/call.wav"
        assert resolve_remote_path(path, BASE) == "/" + path

    def test_bare_name_is_built(self):
        path = resolve_remote_path("out-1-2-20240131-154500-1.wav", BASE)
        assert path == f"{BASE}/2024/01/31/out-1-2-20240131-154500-1.wav"

    def test_empty_rejected(self):
        with pytest.raises(ValueError, match="required"):
            resolve_remote_path("", BASE)


class TestTempPath:
    def test_hidden_sibling_of_target(self):
        temp = temp_path_for(f"{BASE}/2024/01/31/call.wav", "rec-1")
        assert temp.startswith(f"{BASE}/2024/01/31/{TEMP_PREFIX}rec-1-")
        assert temp.endswith("-call.wav")

    def test_unique_per_attempt(self):
        target = f"{BASE}/call.wav"
        assert temp_path_for(target, "rec-1") != temp_path_for(target, "rec-1")

    def test_recording_id_is_made_path_safe(self):
        temp = temp_path_for(f"{BASE}/call.wav", "a/b c")
        name = temp.rsplit("/", 1)[1]
        assert re.match(rf"^{re.escape(TEMP_PREFIX)}a_b_c-[0-9a-f]{{8}}-call\.wav$", name)
