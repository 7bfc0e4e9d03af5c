import django.db.models.expressions
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sender_id', models.CharField(max_length=100)),
                ('recipient_id', models.CharField(max_length=100)),
                ('content', models.TextField(blank=True, default='')),
                ('media_ref', models.CharField(blank=True, max_length=500, null=True)),
                ('message_type', models.CharField(choices=[('text', 'Text'), ('image', 'Image'), ('video', 'Video'), ('audio', 'Audio'), ('file', 'File')], default='text', max_length=10)),
                ('context_id', models.CharField(blank=True, max_length=100, null=True)),
                ('conversation_key', models.CharField(editable=False, max_length=310)),
                ('idempotency_token', models.CharField(blank=True, max_length=100, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('delivered_at', models.DateTimeField(blank=True, null=True)),
                ('read_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'db_table': 'dmessages_message',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['sender_id', 'created_at'], name='dmessage_sender_created_idx'),
                    models.Index(fields=['recipient_id', 'created_at'], name='dmessage_recip_created_idx'),
                    models.Index(fields=['conversation_key', 'created_at'], name='dmessage_conv_created_idx'),
                    models.Index(fields=['recipient_id', 'read_at'], name='dmessage_recip_read_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('idempotency_token__isnull', False)), fields=('sender_id', 'idempotency_token'), name='dmessage_unique_sender_token'),
                    models.CheckConstraint(condition=models.Q(('sender_id', django.db.models.expressions.F('recipient_id')), _negated=True), name='dmessage_no_self_messaging'),
                ],
            },
        ),
    ]
