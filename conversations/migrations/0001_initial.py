from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='ReadWatermark',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('participant_id', models.CharField(max_length=100)),
                ('conversation_key', models.CharField(max_length=310)),
                ('last_read_at', models.DateTimeField()),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'conversations_readwatermark',
                'constraints': [
                    models.UniqueConstraint(fields=('participant_id', 'conversation_key'), name='watermark_unique_participant_key'),
                ],
            },
        ),
    ]
