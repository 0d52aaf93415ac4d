from actionsum.watchers.xprop import (
    parse_active_window_id,
    parse_cardinal,
    parse_gdbus_uint,
    parse_shell_eval,
    parse_window_list,
    parse_wm_class,
    parse_xprop_string,
)


class TestParseWmClass:
    """WM_CLASS のパース"""

    def test_last_token_is_class_name(self):
        assert parse_wm_class('WM_CLASS(STRING) = "Navigator", "Firefox"') == "Firefox"

    def test_single_token(self):
        assert parse_wm_class('WM_CLASS(STRING) = "xterm"') == "xterm"

    def test_quotes_and_spaces_stripped(self):
        assert parse_wm_class('WM_CLASS(STRING) =  "code" ,  "Code" \n') == "Code"

    def test_no_equals_sign_yields_empty(self):
        assert parse_wm_class("WM_CLASS:  not found.") == ""
        assert parse_wm_class("") == ""


class TestParseXpropString:
    def test_quoted_value(self):
        assert parse_xprop_string('WM_NAME(STRING) = "main.py - Visual Studio Code"') == (
            "main.py - Visual Studio Code"
        )

    def test_escaped_quotes(self):
        assert parse_xprop_string('WM_NAME(UTF8_STRING) = "say \\"hi\\""') == 'say "hi"'

    def test_missing_value(self):
        assert parse_xprop_string("WM_NAME:  not found.") == ""


class TestParseWindowIds:
    def test_active_window_id(self):
        output = "_NET_ACTIVE_WINDOW(WINDOW): window id # 0x3a00007"
        assert parse_active_window_id(output) == "0x3a00007"

    def test_active_window_zero_means_none(self):
        output = "_NET_ACTIVE_WINDOW(WINDOW): window id # 0x0"
        assert parse_active_window_id(output) == ""

    def test_active_window_garbage(self):
        assert parse_active_window_id("xprop: unable to open display") == ""

    def test_client_list(self):
        output = "_NET_CLIENT_LIST(WINDOW): window id # 0x1e00003, 0x2200007, 0x3a00007"
        assert parse_window_list(output) == ["0x1e00003", "0x2200007", "0x3a00007"]

    def test_empty_client_list(self):
        assert parse_window_list("_NET_CLIENT_LIST:  not found.") == []


class TestParseNumbers:
    def test_cardinal(self):
        assert parse_cardinal("_NET_WM_PID(CARDINAL) = 4242") == 4242

    def test_cardinal_missing(self):
        assert parse_cardinal("_NET_WM_PID:  not found.") is None

    def test_gdbus_uint(self):
        assert parse_gdbus_uint("(uint64 12345,)\n") == 12345

    def test_gdbus_uint_garbage(self):
        assert parse_gdbus_uint("Error: no such method") is None


class TestParseShellEval:
    def test_success(self):
        assert parse_shell_eval("(true, 'org.gnome.Nautilus|||Home')") == (
            "org.gnome.Nautilus",
            "Home",
        )

    def test_blocked_eval(self):
        # 最近の GNOME は Eval を拒否して (false, '') を返す
        assert parse_shell_eval("(false, '')") is None

    def test_missing_title(self):
        assert parse_shell_eval("(true, 'firefox')") == ("firefox", "")
