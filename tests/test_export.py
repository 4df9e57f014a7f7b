import csv
import json
import unittest
from io import StringIO
from typing import Any, Dict, Iterator, List

import yaml

from capturoo_cli import export
from capturoo_cli.errors import ExportError
from capturoo_cli.models import Lead


def lead_dict(lead_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "leadId": lead_id,
        "system": {
            "clientVersion": "1.2.0",
            "host": "shop.example.com",
            "Origin": "https://shop.example.com",
            "referrer": "https://google.com",
            "userAgent": "Mozilla/5.0",
            "remoteAddr": "10.0.0.1",
            "created": "2020-05-01T10:00:00Z",
        },
        "data": data,
        "tracking": {"utm_source": "newsletter"},
    }


def chunked(text: str, size: int) -> List[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


class IterJsonArrayTests(unittest.TestCase):
    def test_yields_elements_across_chunk_sizes(self) -> None:
        body = json.dumps({"object": "list", "data": [lead_dict("l1", {"a": 1}), lead_dict("l2", {"b": 12345})]})
        for size in (1, 3, 7, 64, len(body)):
            with self.subTest(size=size):
                items = list(export.iter_json_array(chunked(body, size)))
                self.assertEqual([i["leadId"] for i in items], ["l1", "l2"])
                self.assertEqual(items[1]["data"], {"b": 12345})

    def test_numbers_split_between_chunks(self) -> None:
        items = list(export.iter_json_array(['{"data": [12', "34, 5", "6]}"]))
        self.assertEqual(items, [1234, 56])

    def test_data_key_in_any_position(self) -> None:
        body = '{"data": [{"leadId": "x"}], "object": "list", "meta": {"count": 1}}'
        self.assertEqual(list(export.iter_json_array([body])), [{"leadId": "x"}])

    def test_empty_array(self) -> None:
        self.assertEqual(list(export.iter_json_array(['{"object": "list", "data": [ ]}'])), [])

    def test_is_lazy(self) -> None:
        consumed: List[str] = []

        def chunks() -> Iterator[str]:
            for part in ['{"object":"list","data":[', '{"leadId":"a"}', ',{"leadId":"b"}', "]}"]:
                consumed.append(part)
                yield part

        stream = export.iter_json_array(chunks())
        self.assertEqual(next(stream), {"leadId": "a"})
        self.assertNotIn("]}", consumed)

    def test_missing_data_key(self) -> None:
        with self.assertRaises(ExportError):
            list(export.iter_json_array(['{"object": "list"}']))

    def test_truncated_stream(self) -> None:
        with self.assertRaises(ExportError):
            list(export.iter_json_array(['{"object": "list", "data": [{"leadId": "a"}, {"lead']))

    def test_not_an_object(self) -> None:
        with self.assertRaises(ExportError):
            list(export.iter_json_array(["[1, 2]"]))


class LeadCsvWriterTests(unittest.TestCase):
    def test_first_seen_column_order(self) -> None:
        buf = StringIO()
        writer = export.LeadCsvWriter(buf)
        writer.write(Lead.from_dict(lead_dict("l1", {"a": 1})))
        writer.write(Lead.from_dict(lead_dict("l2", {"b": 2})))

        rows = list(csv.reader(StringIO(buf.getvalue())))
        system = ["1.2.0", "shop.example.com", "https://google.com", "Mozilla/5.0", "2020-05-01T10:00:00Z"]
        self.assertEqual(rows[0], ["l1", "1"] + system)
        # column b is only introduced from row 2 onwards; a stays in place and is empty
        self.assertEqual(rows[1], ["l2", "", "2"] + system)

    def test_value_formatting(self) -> None:
        writer = export.LeadCsvWriter(StringIO())
        record = writer.flatten(
            Lead.from_dict(lead_dict("l1", {"s": "text", "t": True, "f": False, "i": 42, "x": 1.5, "y": 2.0}))
        )
        self.assertEqual(record[1:7], ["text", "true", "false", "42", "1.5", "2"])

    def test_floats_written_without_exponent(self) -> None:
        cases = [(1.5e-07, "0.00000015"), (2.5e-05, "0.000025"), (1e20, "100000000000000000000"), (-0.125, "-0.125")]
        for value, expected in cases:
            with self.subTest(value=value):
                self.assertEqual(export.format_scalar("x", value), expected)

    def test_unsupported_value_type(self) -> None:
        writer = export.LeadCsvWriter(StringIO())
        with self.assertRaises(ExportError) as ctx:
            writer.flatten(Lead.from_dict(lead_dict("l1", {"x": [1, 2]})))
        self.assertIn("key=x", str(ctx.exception))
        self.assertIn("[1, 2]", str(ctx.exception))

    def test_null_value_rejected(self) -> None:
        writer = export.LeadCsvWriter(StringIO())
        with self.assertRaises(ExportError):
            writer.flatten(Lead.from_dict(lead_dict("l1", {"x": None})))


class WriteLeadsTests(unittest.TestCase):
    def leads(self) -> List[Lead]:
        return [Lead.from_dict(lead_dict("l1", {"email": "a@example.com"})), Lead.from_dict(lead_dict("l2", {}))]

    def test_json_one_document_per_line(self) -> None:
        buf = StringIO()
        count = export.write_leads("json", self.leads(), buf)

        lines = buf.getvalue().splitlines()
        self.assertEqual(count, 2)
        self.assertEqual(len(lines), 2)
        first = json.loads(lines[0])
        self.assertEqual(first["leadId"], "l1")
        self.assertEqual(first["system"]["clientVersion"], "1.2.0")
        self.assertEqual(first["data"], {"email": "a@example.com"})
        self.assertEqual(first["tracking"], {"utm_source": "newsletter"})

    def test_yaml_document_per_lead(self) -> None:
        buf = StringIO()
        export.write_leads("yaml", self.leads(), buf)

        docs = list(yaml.safe_load_all(buf.getvalue()))
        self.assertEqual([d["leadId"] for d in docs], ["l1", "l2"])
        self.assertEqual(docs[0]["system"]["host"], "shop.example.com")

    def test_csv(self) -> None:
        buf = StringIO()
        export.write_leads("csv", self.leads(), buf)
        rows = list(csv.reader(StringIO(buf.getvalue())))
        self.assertEqual(rows[0][:2], ["l1", "a@example.com"])
        self.assertEqual(rows[1][:2], ["l2", ""])

    def test_unknown_format(self) -> None:
        with self.assertRaises(ExportError):
            export.write_leads("xml", self.leads(), StringIO())

    def test_error_mid_stream_keeps_written_output(self) -> None:
        leads = [Lead.from_dict(lead_dict("l1", {"a": 1})), Lead.from_dict(lead_dict("l2", {"a": {"nested": 1}}))]
        buf = StringIO()
        with self.assertRaises(ExportError):
            export.write_leads("csv", leads, buf)
        self.assertTrue(buf.getvalue().startswith("l1,1,"))


class ExportLeadsTests(unittest.TestCase):
    def test_streams_from_client(self) -> None:
        class FakeClient:
            def __init__(self) -> None:
                self.bucket_ids: List[str] = []

            def stream_leads(self, bucket_id: str) -> Iterator[Lead]:
                self.bucket_ids.append(bucket_id)
                yield Lead.from_dict(lead_dict("l1", {"a": "b"}))

        client = FakeClient()
        buf = StringIO()
        count = export.export_leads(client, "json", "bucket-id-1", buf)

        self.assertEqual(count, 1)
        self.assertEqual(client.bucket_ids, ["bucket-id-1"])
        self.assertEqual(json.loads(buf.getvalue())["leadId"], "l1")


if __name__ == "__main__":
    unittest.main()
