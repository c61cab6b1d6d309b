from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('marketplace', '0001_initial'),
    ]

    operations = [
        migrations.AddConstraint(
            model_name='lot',
            constraint=models.UniqueConstraint(
                deferrable=models.Deferrable['DEFERRED'],
                fields=('auction', 'lot_number'),
                name='lot_unique_number_per_auction',
            ),
        ),
    ]
