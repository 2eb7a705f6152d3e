import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('pending', 'Aguardando entregador'), ('accepted', 'Aceito'), ('driver_completed', 'Finalizado pelo entregador'), ('completed', 'Concluído'), ('cancelled', 'Cancelado')], default='pending', max_length=20, verbose_name='Status')),
                ('total_value', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, verbose_name='Valor total (R$)')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('driver_completed_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('company', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='company_orders', to=settings.AUTH_USER_MODEL, verbose_name='Empresa')),
                ('driver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='driver_orders', to=settings.AUTH_USER_MODEL, verbose_name='Entregador')),
            ],
            options={
                'verbose_name': 'Pedido',
                'verbose_name_plural': 'Pedidos',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
                    models.Index(fields=['driver', 'status'], name='order_driver_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DeliveryLeg',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('pickup_address', models.CharField(max_length=255, verbose_name='Endereço de coleta')),
                ('dropoff_address', models.CharField(max_length=255, verbose_name='Endereço de entrega')),
                ('customer_name', models.CharField(blank=True, max_length=150, verbose_name='Nome do cliente')),
                ('customer_phone', models.CharField(blank=True, max_length=20, null=True, verbose_name='Telefone do cliente')),
                ('package_type', models.CharField(choices=[('envelope', 'Envelope'), ('bag', 'Sacola'), ('small_box', 'Caixa pequena'), ('large_box', 'Caixa grande'), ('other', 'Outro')], default='other', max_length=20, verbose_name='Tipo de pacote')),
                ('notes', models.TextField(blank=True, verbose_name='Observações')),
                ('suggested_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, verbose_name='Preço sugerido (R$)')),
                ('code_hash', models.CharField(blank=True, max_length=64, null=True, verbose_name='Hash do código')),
                ('code_sent_at', models.DateTimeField(blank=True, null=True, verbose_name='Código enviado em')),
                ('validation_attempts', models.PositiveIntegerField(default=0, verbose_name='Tentativas')),
                ('validated_at', models.DateTimeField(blank=True, null=True, verbose_name='Validado em')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='legs', to='logistics.order', verbose_name='Pedido')),
            ],
            options={
                'verbose_name': 'Entrega',
                'verbose_name_plural': 'Entregas',
                'ordering': ['created_at'],
            },
        ),
        migrations.CreateModel(
            name='DeliveryAuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('attempted_code', models.CharField(max_length=64, verbose_name='Código informado')),
                ('success', models.BooleanField(default=False, verbose_name='Sucesso')),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.CharField(blank=True, max_length=255, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('driver', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='delivery_audit_logs', to=settings.AUTH_USER_MODEL, verbose_name='Entregador')),
                ('leg', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='audit_logs', to='logistics.deliveryleg', verbose_name='Entrega')),
            ],
            options={
                'verbose_name': 'Tentativa de validação',
                'verbose_name_plural': 'Tentativas de validação',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['leg', 'created_at'], name='auditlog_leg_created_idx'),
                ],
            },
        ),
    ]
