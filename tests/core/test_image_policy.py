import unittest

from policygate.core.config import RemotePatternRule
from policygate.core.errors import MalformedURL
from policygate.core.policy_gate import ImageRequest, Reason, evaluate_image

PEXELS = RemotePatternRule(protocol="https", hostname="images.pexels.com", pathname="/photos/**")
SUPABASE = RemotePatternRule(protocol="https", hostname="sviemtckfodbhphwbsmb.supabase.co", pathname="/storage/v1/object/public/**")
WILDCARD = RemotePatternRule(protocol="https", hostname="*.example.com", pathname="/assets/**")


class TestEvaluateImage(unittest.TestCase):
    def assertRejected(self, url: str, rules) -> None:
        d = evaluate_image(ImageRequest(url=url), rules)
        self.assertFalse(d.admitted, url)
        self.assertEqual(d.reasons, frozenset({Reason.NO_MATCHING_REMOTE_PATTERN}))

    def test_admits_matching_pexels_photo(self) -> None:
        d = evaluate_image(ImageRequest(url="https://images.pexels.com/photos/123/cat.jpg"), [PEXELS])
        self.assertTrue(d.admitted)
        self.assertEqual(d.decision, "admit")
        self.assertEqual(d.reasons, frozenset())

    def test_rejects_wrong_protocol(self) -> None:
        self.assertRejected("http://images.pexels.com/photos/123/cat.jpg", [PEXELS])

    def test_protocol_and_hostname_are_case_insensitive(self) -> None:
        d = evaluate_image(ImageRequest(url="HTTPS://Images.Pexels.COM/photos/1.jpg"), [PEXELS])
        self.assertTrue(d.admitted)

    def test_path_is_case_sensitive(self) -> None:
        self.assertRejected("https://images.pexels.com/Photos/1.jpg", [PEXELS])

    def test_path_prefix_must_end_on_segment_boundary(self) -> None:
        self.assertRejected("https://images.pexels.com/photosets/1.jpg", [PEXELS])

    def test_matching_is_existential_over_rules(self) -> None:
        url = "https://sviemtckfodbhphwbsmb.supabase.co/storage/v1/object/public/avatars/me.png"
        self.assertTrue(evaluate_image(ImageRequest(url=url), [PEXELS, SUPABASE]).admitted)
        self.assertTrue(evaluate_image(ImageRequest(url=url), [SUPABASE, PEXELS]).admitted)
        self.assertRejected("https://sviemtckfodbhphwbsmb.supabase.co/storage/v1/object/private/x.png", [PEXELS, SUPABASE])

    def test_no_rules_rejects(self) -> None:
        self.assertRejected("https://images.pexels.com/photos/1.jpg", [])

    def test_wildcard_substitution_admits(self) -> None:
        for label in ("a", "cdn", "x-1", "0"):
            url = f"https://{label}.example.com/assets"
            self.assertTrue(evaluate_image(ImageRequest(url=url), [WILDCARD]).admitted, url)

    def test_differing_literal_label_rejects(self) -> None:
        for host in ("a.example.org", "a.exampl.com", "a.example.co", "a.sample.com"):
            self.assertRejected(f"https://{host}/assets/x.png", [WILDCARD])

    def test_multi_label_wildcard_probe_rejects(self) -> None:
        self.assertRejected("https://a.b.example.com/assets/x.png", [WILDCARD])

    def test_wildcard_needs_a_label(self) -> None:
        self.assertRejected("https://example.com/assets/x.png", [WILDCARD])

    def test_idempotent(self) -> None:
        req = ImageRequest(url="https://images.pexels.com/photos/123/cat.jpg")
        first = evaluate_image(req, [PEXELS])
        for _ in range(5):
            self.assertEqual(evaluate_image(req, [PEXELS]), first)

    def test_port_rule(self) -> None:
        rule = RemotePatternRule(protocol="http", hostname="localhost", pathname="/**", port="3000")
        self.assertTrue(evaluate_image(ImageRequest(url="http://localhost:3000/a.png"), [rule]).admitted)
        self.assertRejected("http://localhost:4000/a.png", [rule])
        self.assertRejected("http://localhost/a.png", [rule])

    def test_unset_port_allows_any_port(self) -> None:
        self.assertTrue(evaluate_image(ImageRequest(url="https://images.pexels.com:8443/photos/1.jpg"), [PEXELS]).admitted)

    def test_default_port_counts_as_empty(self) -> None:
        rule = RemotePatternRule(protocol="https", hostname="images.pexels.com", pathname="/**", port="")
        self.assertTrue(evaluate_image(ImageRequest(url="https://images.pexels.com:443/a.jpg"), [rule]).admitted)
        self.assertRejected("https://images.pexels.com:8443/a.jpg", [rule])

    def test_search_rule(self) -> None:
        rule = RemotePatternRule(protocol="https", hostname="images.pexels.com", pathname="/photos/**", search="?w=100")
        self.assertTrue(evaluate_image(ImageRequest(url="https://images.pexels.com/photos/1.jpg?w=100"), [rule]).admitted)
        self.assertRejected("https://images.pexels.com/photos/1.jpg?w=200", [rule])
        self.assertRejected("https://images.pexels.com/photos/1.jpg", [rule])

    def test_dot_segments_cannot_escape_prefix(self) -> None:
        for path in (
            "/photos/../private/secret.jpg",
            "/photos/%2e%2e/private/secret.jpg",
            "/photos/.%2E/private/secret.jpg",
            "/photos/a/../../private/secret.jpg",
            "/photos\\..\\private/secret.jpg",
        ):
            self.assertRejected(f"https://images.pexels.com{path}", [PEXELS])

    def test_dot_segments_inside_prefix_are_resolved(self) -> None:
        for path in ("/photos/./a.jpg", "/photos/%2e/a.jpg", "/photos/x/../a.jpg"):
            d = evaluate_image(ImageRequest(url=f"https://images.pexels.com{path}"), [PEXELS])
            self.assertTrue(d.admitted, path)

    def test_empty_path_is_root(self) -> None:
        rule = RemotePatternRule(protocol="https", hostname="images.pexels.com", pathname="/")
        self.assertTrue(evaluate_image(ImageRequest(url="https://images.pexels.com"), [rule]).admitted)

    def test_malformed_urls_raise(self) -> None:
        for url in ("", "not a url", "/photos/1.jpg", "//images.pexels.com/photos/1.jpg", "https://", "https://host:notaport/x", "mailto:a@b.c"):
            with self.assertRaises(MalformedURL, msg=url) as cm:
                evaluate_image(ImageRequest(url=url), [PEXELS])
            self.assertEqual(cm.exception.code, "image.malformed_url")


if __name__ == "__main__":
    unittest.main()
