from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('conversations', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='ConversationArchive',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('participant_id', models.CharField(max_length=100)),
                ('conversation_key', models.CharField(max_length=310)),
                ('archived_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'conversations_conversationarchive',
                'constraints': [
                    models.UniqueConstraint(fields=('participant_id', 'conversation_key'), name='archive_unique_participant_key'),
                ],
            },
        ),
    ]
