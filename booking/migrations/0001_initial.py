import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='RegisterDate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('date', models.DateField(unique=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'register_dates',
                'ordering': ['date'],
            },
        ),
        migrations.CreateModel(
            name='Setting',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=255)),
                ('register_start_date', models.DateField(blank=True, null=True)),
                ('register_end_date', models.DateField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'settings',
            },
        ),
        migrations.CreateModel(
            name='RegisterTime',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('start_time', models.TimeField(blank=True, null=True)),
                ('end_time', models.TimeField(blank=True, null=True)),
                ('time', models.CharField(blank=True, default='', max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('date', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='times', to='booking.registerdate')),
            ],
            options={
                'db_table': 'register_times',
                'ordering': [models.OrderBy(models.F('start_time'), nulls_last=True), 'time', 'id'],
                'indexes': [models.Index(fields=['date', 'is_active'], name='reg_time_date_active_idx')],
            },
        ),
        migrations.CreateModel(
            name='RegisterSlot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=255)),
                ('available_slots', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('time', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='slots', to='booking.registertime')),
            ],
            options={
                'db_table': 'register_slots',
                'ordering': ['id'],
                'constraints': [models.CheckConstraint(condition=models.Q(('available_slots__gte', 1)), name='slot_capacity_positive')],
            },
        ),
        migrations.CreateModel(
            name='UserSlotSelection',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('userid', models.CharField(max_length=255)),
                ('name', models.CharField(max_length=255)),
                ('position', models.CharField(blank=True, default='', max_length=255)),
                ('department', models.CharField(blank=True, default='', max_length=255)),
                ('register_type', models.CharField(choices=[('regular', 'Regular employee'), ('outsource', 'Outsource')], default='regular', max_length=10)),
                ('is_delete', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('slot', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='selections', to='booking.registerslot')),
            ],
            options={
                'db_table': 'user_slot_selections',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['slot', 'is_delete'], name='selection_slot_active_idx'),
                    models.Index(fields=['userid', 'is_delete'], name='selection_user_active_idx'),
                ],
                'constraints': [models.UniqueConstraint(condition=models.Q(('is_delete', False)), fields=('userid',), name='unique_active_selection_per_user')],
            },
        ),
    ]
