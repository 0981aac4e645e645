from retag.tsdb import influxql


def test_plain_names_are_double_quoted():
    assert influxql.quote_ident("temp") == '"temp"'
    assert influxql.show_tag_keys("temp") == 'SHOW TAG KEYS FROM "temp"'
    assert influxql.show_field_keys("cpu.load") == 'SHOW FIELD KEYS FROM "cpu.load"'


def test_identifier_quotes_and_backslashes_are_escaped():
    assert influxql.quote_ident('my "m"') == '"my \\"m\\""'
    assert influxql.quote_ident("a\\b") == '"a\\\\b"'


def test_literal_quotes_and_backslashes_are_escaped():
    assert influxql.quote_literal("O'Brien") == "'O\\'Brien'"
    assert influxql.quote_literal("C:\\tmp") == "'C:\\\\tmp'"
    assert influxql.quote_literal('say "hi"') == "'say \"hi\"'"


def test_select_by_tag_quotes_every_part():
    query = influxql.select_by_tag('my "m"', "owner name", "O'Brien")
    assert query == 'SELECT * FROM "my \\"m\\"" WHERE ("owner name"::tag = \'O\\\'Brien\')'
