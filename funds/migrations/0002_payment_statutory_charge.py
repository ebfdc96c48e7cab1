import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('funds', '0001_initial'),
        ('statutory', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='payment',
            name='statutory_charge',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='statutory.statutorycharge'),
        ),
    ]
