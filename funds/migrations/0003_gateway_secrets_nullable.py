import encrypted_fields.fields
from django.db import migrations


class Migration(migrations.Migration):

    dependencies = [
        ('funds', '0002_payment_statutory_charge'),
    ]

    operations = [
        migrations.AlterField(
            model_name='paymentgateway',
            name='secret_key',
            field=encrypted_fields.fields.EncryptedCharField(blank=True, max_length=255, null=True),
        ),
        migrations.AlterField(
            model_name='paymentgateway',
            name='webhook_secret',
            field=encrypted_fields.fields.EncryptedCharField(blank=True, max_length=255, null=True),
        ),
    ]
