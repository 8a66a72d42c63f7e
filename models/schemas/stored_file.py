from marshmallow import Schema, fields


class StoredFileOutSchema(Schema):
    id = fields.String(dump_only=True)
    owner_id = fields.String(dump_only=True)
    name = fields.String()
    extension = fields.String()
    mime_type = fields.String()
    size = fields.Integer()
    upload_date = fields.DateTime()
