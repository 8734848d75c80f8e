import json

from loopsmith.utils.llm_parse import extract_json_object, find_object_end, iter_json_objects


class TestExtractJsonObject:
    def test_object_surrounded_by_text(self):
        text = 'noise before {"score": 9.2, "pass": true} noise after'
        assert extract_json_object(text) == '{"score": 9.2, "pass": true}'

    def test_nested_objects_return_outermost(self):
        payload = {"score": 7, "details": {"context_specific": {"a": {"b": 1}}}}
        text = "result:\n" + json.dumps(payload) + "\n}}} trailing"
        assert json.loads(extract_json_object(text)) == payload

    def test_braces_inside_strings_are_ignored(self):
        payload = {"summary": "uses { and } in text", "issues": ["missing }"]}
        text = "x " + json.dumps(payload) + " y"
        assert json.loads(extract_json_object(text)) == payload

    def test_escaped_quotes_inside_strings(self):
        payload = {"summary": 'he said "close }" and left \\ here', "score": 6}
        text = "prefix " + json.dumps(payload) + " {suffix"
        assert json.loads(extract_json_object(text)) == payload

    def test_no_brace(self):
        assert extract_json_object("plain text only") is None

    def test_unclosed_object(self):
        assert extract_json_object('{"score": 8, "pass": true') is None


class TestFindObjectEnd:
    def test_returns_index_of_closing_brace(self):
        text = 'a{"k": "}"}b'
        end = find_object_end(text, 1)
        assert text[end] == "}"
        assert text[1 : end + 1] == '{"k": "}"}'


class TestIterJsonObjects:
    def test_yields_objects_in_order(self):
        text = 'first {"a": 1} then {"b": 2} done'
        assert list(iter_json_objects(text)) == [{"a": 1}, {"b": 2}]

    def test_skips_invalid_candidates(self):
        text = '{"score": number, "pass": boolean}\n{"score": 8.5}'
        assert list(iter_json_objects(text)) == [{"score": 8.5}]

    def test_skips_unclosed_brace(self):
        text = 'oops { never closed "x"\n{"score": 3}'
        assert {"score": 3} in list(iter_json_objects(text))
