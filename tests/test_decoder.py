import unittest

from dht_monitor.buffers import Sample
from dht_monitor.decoder import (decode, decode_delimited, decode_reading, decode_structured,
                                 decode_tagged, safe_float)


class TestStrategies(unittest.TestCase):

    def test_structured_keys(self):
        self.assertEqual(decode_structured('{"temp":21.5,"hum":48}'), (21.5, 48.0))
        self.assertEqual(decode_structured('{"temperature":"22.1","humidity":40}'), (22.1, 40.0))
        self.assertEqual(decode_structured('{"t":20,"h":30}'), (20.0, 30.0))

    def test_structured_first_present_key_wins(self):
        self.assertEqual(decode_structured('{"temp":null,"temperature":19,"t":5,"h":30}'), (19.0, 30.0))
        self.assertEqual(decode_structured('{"temp":1,"t":5,"hum":2,"h":9}'), (1.0, 2.0))

    def test_structured_rejects(self):
        self.assertIsNone(decode_structured('{"temp":true,"hum":40}'))
        self.assertIsNone(decode_structured('{"temp":21}'))
        self.assertIsNone(decode_structured('{"temp":1e999,"hum":40}'))
        self.assertIsNone(decode_structured('{not json}'))
        self.assertIsNone(decode_structured('["temp", 1]'))
        self.assertIsNone(decode_structured(' {"temp":1,"hum":2}x'))

    def test_structured_deep_nesting_does_not_raise(self):
        line = '{"a":' * 5000 + "1" + "}" * 5000
        self.assertIsNone(decode_structured(line))

    def test_delimited(self):
        self.assertEqual(decode_delimited("21.5,48"), (21.5, 48.0))
        self.assertEqual(decode_delimited(" -3.25 , 99 "), (-3.25, 99.0))
        self.assertEqual(decode_delimited("21.5,48,extra"), (21.5, 48.0))
        self.assertIsNone(decode_delimited("21.0,"))
        self.assertIsNone(decode_delimited("nan,40"))
        self.assertIsNone(decode_delimited("inf,40"))
        self.assertIsNone(decode_delimited("21.5 48"))

    def test_tagged(self):
        self.assertEqual(decode_tagged("Temp: 21.5 Hum=48"), (21.5, 48.0))
        self.assertEqual(decode_tagged("TEMP=-3.5 humidity: 80"), (-3.5, 80.0))
        self.assertEqual(decode_tagged("temp = +4 hum=.5"), (4.0, 0.5))
        self.assertIsNone(decode_tagged("temp=20"))
        self.assertIsNone(decode_tagged("hum=20 t=3"))

    def test_safe_float(self):
        self.assertEqual(safe_float(" 1.5 "), 1.5)
        self.assertEqual(safe_float(7), 7.0)
        self.assertIsNone(safe_float(""))
        self.assertIsNone(safe_float("none"))
        self.assertIsNone(safe_float(False))
        self.assertIsNone(safe_float([1]))
        self.assertIsNone(safe_float(float("nan")))


class TestDecode(unittest.TestCase):

    def test_documented_examples(self):
        self.assertEqual(decode('{"temp":21.5,"hum":48}', ts=1), Sample(1, 21.5, 48))
        self.assertEqual(decode("21.5,48", ts=1), Sample(1, 21.5, 48))
        self.assertEqual(decode("Temp: 21.5 Hum=48", ts=1), Sample(1, 21.5, 48))
        self.assertIsNone(decode("hello world", ts=1))

    def test_falls_through_to_tagged(self):
        # the comma split gives "temp=21.5", which is not a number
        self.assertEqual(decode("temp=21.5, hum=40", ts=5), Sample(5, 21.5, 40.0))

    def test_not_samples(self):
        for line in ("", "INTERVAL=2000", "OK INTERVAL=1500", "{}", "ready", "a,b"):
            self.assertIsNone(decode(line, ts=1), line)

    def test_stamps_now_by_default(self):
        s = decode("1,2")
        self.assertGreater(s.ts, 1_600_000_000_000)

    def test_custom_strategy_chain(self):
        self.assertIsNone(decode_reading("21.5,48", strategies=(decode_tagged,)))
        self.assertEqual(decode_reading("21.5,48", strategies=(decode_tagged, decode_delimited)), (21.5, 48.0))


if __name__ == "__main__":
    unittest.main()
