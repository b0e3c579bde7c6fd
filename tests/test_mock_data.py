from __future__ import annotations

import unittest

from ig_harvest.mock_data import MOCK_COMMENT_COUNT, mock_harvest_result


class TestMockHarvestResult(unittest.TestCase):
    def test_fixed_and_deterministic(self) -> None:
        first = mock_harvest_result("https://www.instagram.com/p/A/")
        second = mock_harvest_result()

        self.assertEqual(first, second)
        self.assertEqual(len(first.comments), MOCK_COMMENT_COUNT)
        self.assertIsNotNone(first.post.caption)
        assert first.meta is not None
        self.assertEqual(first.meta.source, "mock")
        self.assertEqual(first.meta.total_comments, MOCK_COMMENT_COUNT)

    def test_comment_shape(self) -> None:
        comments = mock_harvest_result().comments
        self.assertEqual(comments[0].id, "1")
        self.assertEqual(comments[0].username, "mock_user_1")
        self.assertIn("#giveaway", comments[0].text)
        self.assertEqual(
            comments[0].avatar_url,
            "https://unavatar.io/instagram/mock_user_1?size=256",
        )
        self.assertEqual(len({c.id for c in comments}), len(comments))


if __name__ == "__main__":
    unittest.main()
