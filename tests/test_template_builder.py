"""
Unit tests for TemplateBuilder.
"""

import os
import sys
import unittest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import FieldType, PosterField, Template, TextAlign
from template_builder import TemplateBuilder


class TestTemplateBuilder(unittest.TestCase):

    def test_ids_are_sequential(self):
        builder = TemplateBuilder("Diwali")
        text = builder.add_text_field()
        image = builder.add_image_field()
        logo = builder.add_logo_field()
        self.assertEqual([text.id, image.id, logo.id], ["field_1", "field_2", "field_3"])
        self.assertEqual([f.type for f in builder.fields], [FieldType.TEXT, FieldType.IMAGE, FieldType.LOGO])

    def test_default_labels(self):
        builder = TemplateBuilder("Diwali")
        self.assertEqual(builder.add_text_field().label, "Text Field 1")
        self.assertEqual(builder.add_logo_field(label="Shop Logo").label, "Shop Logo")

    def test_builders_do_not_share_counters(self):
        first = TemplateBuilder("A")
        second = TemplateBuilder("B")
        first.add_text_field()
        first.add_text_field()
        self.assertEqual(second.add_text_field().id, "field_1")

    def test_text_attributes(self):
        builder = TemplateBuilder("A")
        field = builder.add_text_field(font_size=48, color="#FF0000", align=TextAlign.RIGHT, required=True)
        self.assertEqual(field.font_size, 48)
        self.assertEqual(field.color, "#FF0000")
        self.assertEqual(field.align, TextAlign.RIGHT)
        self.assertTrue(field.required)

    def test_update_field(self):
        builder = TemplateBuilder("A")
        field = builder.add_text_field()
        updated = builder.update_field(field.id, x=50, align="center")
        self.assertEqual(updated.x, 50)
        self.assertEqual(updated.align, TextAlign.CENTER)
        self.assertEqual(builder.fields[0].x, 50)

    def test_update_unknown_field(self):
        with self.assertRaises(KeyError):
            TemplateBuilder("A").update_field("field_9", x=1)

    def test_remove_field_keeps_order(self):
        builder = TemplateBuilder("A")
        builder.add_text_field()
        builder.add_image_field()
        builder.add_logo_field()
        builder.remove_field("field_2")
        self.assertEqual([f.id for f in builder.fields], ["field_1", "field_3"])
        with self.assertRaises(KeyError):
            builder.remove_field("field_2")

    def test_removed_ids_are_not_reused(self):
        builder = TemplateBuilder("A")
        builder.add_text_field()
        builder.add_text_field()
        builder.remove_field("field_2")
        self.assertEqual(builder.add_text_field().id, "field_3")

    def test_clear_resets_counter(self):
        builder = TemplateBuilder("A")
        builder.add_text_field()
        builder.clear()
        self.assertEqual(builder.fields, [])
        self.assertEqual(builder.add_image_field().id, "field_1")

    def test_fields_property_is_a_copy(self):
        builder = TemplateBuilder("A")
        builder.add_text_field()
        builder.fields.clear()
        self.assertEqual(len(builder.fields), 1)

    def test_from_template_continues_numbering(self):
        template = Template(
            id=1,
            name="Holi",
            image_path="holi.png",
            fields=[
                PosterField(id="field_4", type=FieldType.TEXT),
                PosterField(id="1700000000000", type=FieldType.IMAGE),
                PosterField(id="field_2", type=FieldType.LOGO),
            ],
        )
        builder = TemplateBuilder.from_template(template)
        self.assertEqual(builder.image_path, "holi.png")
        self.assertEqual(builder.add_text_field().id, "field_5")
        self.assertEqual(len(builder.fields), 4)

    def test_to_payload_uses_wire_names(self):
        builder = TemplateBuilder("A", category_id=3, image_path="a.png")
        builder.add_text_field(font_size=30)
        builder.add_image_field()
        payload = builder.to_payload()
        self.assertEqual(payload["category_id"], 3)
        self.assertEqual(payload["fields"][0]["fontSize"], 30)
        self.assertEqual(payload["fields"][0]["fontFamily"], "Arial")
        self.assertNotIn("fontSize", payload["fields"][1])


if __name__ == "__main__":
    unittest.main()
