from design_studio.models.user import User
from design_studio.models.job import Job, JobStatusHistory
from design_studio.models.designer_assignment import DesignerAssignment
from design_studio.models.pricing import PricingTier, ProductPricing
from design_studio.models.voucher import VoucherCode, VoucherUsage
from design_studio.models.payment import Payment, PaymentLineItem
from design_studio.models.design_package import DesignPackageOrder
from design_studio.models.email import EmailLog, EmailOutbox, EmailTemplate
