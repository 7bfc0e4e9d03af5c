from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Participant',
            fields=[
                ('participant_id', models.CharField(max_length=100, primary_key=True, serialize=False, unique=True)),
                ('display_name', models.CharField(max_length=255)),
                ('role', models.CharField(choices=[('farmer', 'Farmer'), ('adopter', 'Adopter'), ('expert', 'Expert'), ('admin', 'Admin')], max_length=20)),
                ('avatar_url', models.URLField(blank=True, max_length=500, null=True)),
                ('email', models.EmailField(blank=True, max_length=255, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'participants',
                'indexes': [
                    models.Index(fields=['role'], name='participants_role_idx'),
                    models.Index(fields=['display_name'], name='participants_name_idx'),
                ],
            },
        ),
    ]
